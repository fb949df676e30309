"""
tests/test_ticket_service.py — Epic / slice / ticket service layer.

Exercises the service functions directly (inside the app context provided
by the autouse ``session`` fixture) against the SQLAlchemy store.
"""

import pytest

import app.services.ticket_service as svc
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.services.relationship_service import RelationshipGraphManager, TicketRef, get_relationship_manager
from app.store import get_store


@pytest.fixture()
def epic_id():
    return svc.create_epic({"epic_id": "e1", "title": "Epic"})["epic_id"]


@pytest.fixture()
def slice_id(epic_id):
    return svc.create_slice(epic_id, {"slice_id": "s1", "title": "Slice"})["slice_id"]


def _ticket(epic_id, slice_id, title="T", **extra):
    return svc.create_ticket(epic_id, slice_id, {"title": title, "intent": "why", **extra})


class TestEpics:

    def test_create_generates_id(self):
        epic = svc.create_epic({"title": "  Payments  "})
        assert epic["epic_id"].startswith("epic-")
        assert epic["title"] == "Payments"
        assert epic["slice_count"] == 0
        assert "kind" not in epic

    def test_duplicate_id_rejected(self, epic_id):
        with pytest.raises(ConflictError):
            svc.create_epic({"epic_id": epic_id, "title": "Again"})

    def test_invalid_id_rejected(self):
        with pytest.raises(ValidationError):
            svc.create_epic({"epic_id": "has#hash", "title": "Bad"})

    def test_title_required(self):
        with pytest.raises(ValidationError):
            svc.create_epic({"title": "   "})

    def test_assignees_must_be_strings(self):
        with pytest.raises(ValidationError):
            svc.create_epic({"title": "X", "assignees": "bob"})

    def test_counts(self, epic_id, slice_id):
        _ticket(epic_id, slice_id)
        _ticket(epic_id, slice_id)
        epic = svc.get_epic(epic_id)
        assert epic["slice_count"] == 1
        assert epic["ticket_count"] == 2
        listed = svc.list_epics()
        assert [(e["epic_id"], e["ticket_count"]) for e in listed] == [(epic_id, 2)]

    def test_get_missing(self):
        with pytest.raises(NotFoundError):
            svc.get_epic("nope")

    def test_delete_cascades(self, epic_id, slice_id):
        a = _ticket(epic_id, slice_id, "A")
        b = _ticket(epic_id, slice_id, "B")
        get_relationship_manager().add_relationship(
            TicketRef(epic_id, slice_id, a["ticket_id"]),
            TicketRef(epic_id, slice_id, b["ticket_id"]),
        )
        svc.delete_epic(epic_id)
        with pytest.raises(NotFoundError):
            svc.get_epic(epic_id)
        assert get_store().query(f"EPIC#{epic_id}#") == []


class TestSlices:

    def test_create_requires_epic(self):
        with pytest.raises(NotFoundError):
            svc.create_slice("missing", {"title": "S"})

    def test_list_with_ticket_counts(self, epic_id, slice_id):
        svc.create_slice(epic_id, {"slice_id": "s2", "title": "Second"})
        _ticket(epic_id, slice_id)
        counts = {s["slice_id"]: s["ticket_count"] for s in svc.list_slices(epic_id)}
        assert counts == {"s1": 1, "s2": 0}

    def test_delete_removes_tickets(self, epic_id, slice_id):
        _ticket(epic_id, slice_id)
        svc.delete_slice(epic_id, slice_id)
        with pytest.raises(NotFoundError):
            svc.get_slice(epic_id, slice_id)
        assert svc.list_tickets(epic_id) == []


class TestTickets:

    def test_defaults(self, epic_id, slice_id):
        t = _ticket(epic_id, slice_id)
        assert t["ticket_id"].startswith("ticket-")
        assert t["status"] == "open"
        assert t["type"] == "task"
        assert t["blocks_tickets"] == []
        assert t["blocked_by_tickets"] == []

    def test_title_and_intent_required(self, epic_id, slice_id):
        with pytest.raises(ValidationError) as exc:
            svc.create_ticket(epic_id, slice_id, {"title": "only title"})
        assert "intent" in exc.value.details

    def test_invalid_type(self, epic_id, slice_id):
        with pytest.raises(ValidationError):
            _ticket(epic_id, slice_id, type="epic")

    def test_list_by_epic_and_slice(self, epic_id, slice_id):
        svc.create_slice(epic_id, {"slice_id": "s2", "title": "Second"})
        _ticket(epic_id, slice_id, "A")
        _ticket(epic_id, "s2", "B")
        assert {t["title"] for t in svc.list_tickets(epic_id)} == {"A", "B"}
        assert [t["title"] for t in svc.list_tickets(epic_id, "s2")] == ["B"]

    def test_update_status(self, epic_id, slice_id):
        t = _ticket(epic_id, slice_id)
        updated = svc.update_ticket(epic_id, slice_id, t["ticket_id"], {"status": "in_progress"})
        assert updated["status"] == "in_progress"
        assert updated["title"] == t["title"]

    def test_update_rejects_unknown_status(self, epic_id, slice_id):
        t = _ticket(epic_id, slice_id)
        with pytest.raises(ValidationError):
            svc.update_ticket(epic_id, slice_id, t["ticket_id"], {"status": "wontfix"})

    def test_update_requires_fields(self, epic_id, slice_id):
        t = _ticket(epic_id, slice_id)
        with pytest.raises(ValidationError):
            svc.update_ticket(epic_id, slice_id, t["ticket_id"], {"ticket_id": "x"})

    def test_get_includes_relationships(self, epic_id, slice_id):
        a = _ticket(epic_id, slice_id, "A")
        b = _ticket(epic_id, slice_id, "B")
        get_relationship_manager().add_relationship(
            svc.ticket_ref(epic_id, slice_id, a["ticket_id"]),
            svc.ticket_ref(epic_id, slice_id, b["ticket_id"]),
        )
        assert svc.get_ticket(epic_id, slice_id, a["ticket_id"])["blocks_tickets"] == [b["ticket_id"]]
        assert svc.get_ticket(epic_id, slice_id, b["ticket_id"])["blocked_by_tickets"] == [a["ticket_id"]]

    def test_delete_cascades_edges(self, epic_id, slice_id):
        a = _ticket(epic_id, slice_id, "A")
        b = _ticket(epic_id, slice_id, "B")
        ra = svc.ticket_ref(epic_id, slice_id, a["ticket_id"])
        rb = svc.ticket_ref(epic_id, slice_id, b["ticket_id"])
        get_relationship_manager().add_relationship(ra, rb)
        svc.delete_ticket(epic_id, slice_id, a["ticket_id"])
        assert get_relationship_manager().list_relationships(rb) == []
        assert svc.get_ticket(epic_id, slice_id, b["ticket_id"])["blocked_by_tickets"] == []


class TestFindTicketRef:

    def test_searches_epic(self, epic_id, slice_id):
        t = _ticket(epic_id, slice_id)
        ref = svc.find_ticket_ref(epic_id, t["ticket_id"])
        assert ref == TicketRef(epic_id, slice_id, t["ticket_id"])

    def test_missing(self, epic_id, slice_id):
        with pytest.raises(NotFoundError):
            svc.find_ticket_ref(epic_id, "ticket-nope")

    def test_ambiguous_id_needs_slice(self, epic_id, slice_id):
        svc.create_slice(epic_id, {"slice_id": "s2", "title": "Second"})
        store = get_store()
        # Same ticket id in two slices can only be produced by direct writes
        for s in (slice_id, "s2"):
            store.put(
                f"EPIC#{epic_id}#SLICE#{s}#TICKET#dup",
                {"kind": "ticket", "ticket_id": "dup", "epic_id": epic_id, "slice_id": s,
                 "created_at": 0},
            )
        with pytest.raises(ValidationError):
            svc.find_ticket_ref(epic_id, "dup")
        assert svc.find_ticket_ref(epic_id, "dup", "s2").slice_id == "s2"

    def test_unusable_ids_are_not_found(self, epic_id, slice_id):
        t = _ticket(epic_id, slice_id)
        for bad in (f"{t['ticket_id']}#X", 7, None):
            with pytest.raises(NotFoundError):
                svc.find_ticket_ref(epic_id, bad)
        with pytest.raises(NotFoundError):
            svc.find_ticket_ref(f"{epic_id}#SLICE#{slice_id}", t["ticket_id"])


class TestIdAndTextGuards:

    def test_separator_in_ids_never_reaches_store(self, epic_id, slice_id):
        with pytest.raises(NotFoundError):
            svc.get_epic(f"{epic_id}#SLICE#{slice_id}")
        with pytest.raises(NotFoundError):
            svc.delete_epic(f"{epic_id}#SLICE#{slice_id}")
        assert svc.get_slice(epic_id, slice_id)["slice_id"] == slice_id

    def test_non_string_text_rejected(self, epic_id, slice_id):
        with pytest.raises(ValidationError) as exc:
            svc.create_epic({"title": 5})
        assert exc.value.details == {"title": "int"}
        with pytest.raises(ValidationError):
            svc.create_slice(epic_id, {"title": ["x"]})
        with pytest.raises(ValidationError):
            _ticket(epic_id, slice_id, description=3)
        t = _ticket(epic_id, slice_id)
        with pytest.raises(ValidationError):
            svc.update_ticket(epic_id, slice_id, t["ticket_id"], {"intent": {"a": 1}})

    def test_delete_removes_record_before_edges(self, epic_id, slice_id, monkeypatch):
        a, b = _ticket(epic_id, slice_id, "A"), _ticket(epic_id, slice_id, "B")
        manager = get_relationship_manager()
        ref_a = TicketRef(epic_id, slice_id, a["ticket_id"])
        manager.add_relationship(ref_a, TicketRef(epic_id, slice_id, b["ticket_id"]))
        seen = []
        original = RelationshipGraphManager.cascade_delete_for_ticket

        def cascade(self, ref, **kwargs):
            seen.append(get_store().get_or_none(f"EPIC#{epic_id}#SLICE#{slice_id}#TICKET#{ref.ticket_id}"))
            return original(self, ref, **kwargs)

        monkeypatch.setattr(RelationshipGraphManager, "cascade_delete_for_ticket", cascade)
        svc.delete_ticket(epic_id, slice_id, a["ticket_id"])
        assert seen == [None]
        assert manager.list_relationships(ref_a) == []
