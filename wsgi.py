"""
WSGI / Flask CLI entry point.

Usage:
    flask --app wsgi db upgrade          # apply migrations (kv_records table)
    flask --app wsgi seed-demo           # demo epic with a blocking chain
    gunicorn wsgi:app                    # serve
"""

from app import create_app

app = create_app()
