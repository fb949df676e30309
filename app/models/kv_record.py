"""
Key-value record table backing the SQL store adapter.

One row per store key. ``version`` starts at 1 and is bumped on every
write; conditional writes compare against it (optimistic concurrency).
Epics, slices, tickets and relationship graphs all live here as JSON
documents under hierarchical keys (see app.store.keys).
"""

from datetime import datetime, timezone

from app.models import db


class KVRecord(db.Model):
    """A single versioned JSON document addressed by an opaque key."""

    __tablename__ = "kv_records"

    key = db.Column(db.String(512), primary_key=True)
    value = db.Column(db.JSON, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint("version >= 1", name="ck_kv_version_positive"),
    )

    def __repr__(self):
        return f"<KVRecord {self.key} v{self.version}>"
