"""
tests/test_seed_and_middleware.py — Demo seeding, CLI and ambient middleware.
"""

import json
import logging

import app.services.ticket_service as svc
from app.middleware.logging_config import JSONFormatter, ReadableFormatter
from app.middleware.rate_limiter import init_rate_limits
from app.services.seed_service import DEMO_EPIC_ID, seed_demo, seed_demo_if_missing


class TestSeed:

    def test_seed_demo(self):
        counts = seed_demo()
        assert counts == {"epics": 1, "slices": 2, "tickets": 4, "relationships": 3}
        epic = svc.get_epic(DEMO_EPIC_ID)
        assert epic["ticket_count"] == 4

    def test_seed_is_idempotent(self):
        assert seed_demo_if_missing() is not None
        assert seed_demo_if_missing() is None
        assert len(svc.list_epics()) == 1

    def test_seed_chain_is_acyclic_and_linked(self):
        seed_demo()
        tickets = svc.list_tickets(DEMO_EPIC_ID)
        blocked = [t for t in tickets if svc.get_ticket(
            t["epic_id"], t["slice_id"], t["ticket_id"])["blocked_by_tickets"]]
        assert len(blocked) == 3

    def test_cli_command(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["seed-demo"])
        assert result.exit_code == 0, result.output
        assert svc.get_epic(DEMO_EPIC_ID)["slice_count"] == 2


class TestLogging:

    def _record(self, **extra):
        record = logging.LogRecord("app.test", logging.WARNING, __file__, 10, "conflict %s", ("k",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_includes_extras(self):
        out = json.loads(JSONFormatter().format(self._record(
            request_id="r1", epic_id="e1", graph_key="EPIC#e1#GRAPH", attempt=2,
        )))
        assert out["message"] == "conflict k"
        assert out["level"] == "WARNING"
        assert out["request_id"] == "r1"
        assert out["epic_id"] == "e1"
        assert out["graph_key"] == "EPIC#e1#GRAPH"
        assert out["attempt"] == 2
        assert "ticket_id" not in out

    def test_readable_formatter(self):
        line = ReadableFormatter().format(self._record(request_id="r1", duration_ms=12.0))
        assert "app.test [r1]: conflict k [12ms]" in line

    def test_readable_formatter_renders_scope_and_graph(self):
        line = ReadableFormatter().format(self._record(
            epic_id="e1", slice_id="s1", graph_key="EPIC#e1#GRAPH", attempt=2,
        ))
        assert "app.test e1/s1: conflict k (graph_key=EPIC#e1#GRAPH attempt=2)" in line

    def test_json_timestamp_is_record_time(self):
        record = self._record()
        record.created = 0.0
        out = json.loads(JSONFormatter().format(record))
        assert out["timestamp"].startswith("1970-01-01T00:00:00")
        assert out["source"].endswith(":10")


class _FakeLimiter:
    def __init__(self):
        self.limited = {}
        self.exempted = []

    def limit(self, value):
        def _apply(bp):
            self.limited[bp.name] = value
            return bp
        return _apply

    def exempt(self, bp):
        self.exempted.append(bp.name)


class TestRateLimits:

    def test_skipped_when_testing(self, app):
        fake = _FakeLimiter()
        init_rate_limits(app, fake)
        assert fake.limited == {}

    def test_applied_per_blueprint(self, app):
        fake = _FakeLimiter()
        app.config["TESTING"] = False
        try:
            init_rate_limits(app, fake)
        finally:
            app.config["TESTING"] = True
        assert fake.limited["relationships"] == "60/minute"
        assert fake.limited["tickets"] == "120/minute"
        assert fake.exempted == ["health"]
