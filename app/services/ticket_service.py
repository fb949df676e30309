"""
Ticketing — Service Layer.

Business logic for the Epic → Slice → Ticket hierarchy:
    - ID generation:     epic-1a2b3c4d, slice-…, ticket-… (caller may supply epic/slice ids)
    - CRUD:              create / list / get / delete for all three levels
    - Ticket updates:    partial PATCH with status / type / priority validation
    - Deletion cascade:  ticket delete removes its relationship edges first;
                         slice and epic deletes cascade through their tickets
    - Derived fields:    slice_count / ticket_count on epics,
                         ticket_count on slices,
                         blocks_tickets / blocked_by_tickets on tickets

All records live in the key-value store (see app.store.keys).
"""

from __future__ import annotations

import logging
from typing import Any

from flask import current_app

from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    WriteConflictError,
)
from app.services.relationship_service import TicketRef, get_relationship_manager, partition
from app.store import KeyNotFound, Record, VersionConflict, get_store
from app.store.keys import (
    EPIC_PREFIX,
    KIND_EPIC,
    KIND_SLICE,
    KIND_TICKET,
    epic_children_prefix,
    epic_key,
    slice_key,
    slice_tickets_prefix,
    slices_prefix,
    ticket_key,
)
from app.utils.helpers import generate_id, is_valid_id, utc_now_iso, utc_now_millis

logger = logging.getLogger(__name__)

TICKET_STATUSES = ("open", "in_progress", "blocked", "in_review", "done", "closed")
TICKET_TYPES = ("task", "bug", "feature", "spike", "chore")
TICKET_PRIORITIES = ("critical", "high", "medium", "low")

DEFAULT_TICKET_STATUS = "open"
DEFAULT_TICKET_TYPE = "task"

# PATCH-able ticket fields
_TICKET_UPDATABLE = ("title", "intent", "description", "type", "status", "priority", "assignee", "notes")


# ── Validation helpers ───────────────────────────────────────────────────────


def _check_id(field: str, value: str) -> str:
    if not is_valid_id(value):
        raise ValidationError(
            f"{field} must be 1-64 characters of letters, digits, '.', '_', ':' or '-'",
            details={field: value},
        )
    return value


def _check_choice(field: str, value: Any, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field}. Must be one of: {', '.join(allowed)}",
            details={field: value},
        )


def _text(field: str, value: Any, *, required: bool = False) -> str | None:
    """Stripped string value; non-strings are rejected rather than coerced."""
    if value is None:
        text = None
    elif isinstance(value, str):
        text = value.strip()
    else:
        raise ValidationError(
            f"{field} must be a string", details={field: type(value).__name__},
        )
    if required and not text:
        raise ValidationError(f"{field} is required", details={field: "missing"})
    return text


def _require_ids(resource: str, *ids: Any) -> None:
    # An id that cannot be a key segment names nothing; "#" would alias other records.
    if not all(is_valid_id(i) for i in ids):
        raise NotFoundError(resource=resource, resource_id="/".join(str(i) for i in ids))


def _clean_assignees(value: Any) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(a, str) for a in value):
        raise ValidationError("assignees must be a list of strings", details={"assignees": value})
    return [a.strip() for a in value if a.strip()]


def _create(key: str, value: dict, resource: str, field: str, resource_id: str) -> Record:
    try:
        return get_store().put(key, value, expected_version=0)
    except VersionConflict:
        raise ConflictError(resource, field, resource_id) from None


def _values(records: list[Record], kind: str) -> list[dict]:
    return [r.value for r in records if r.value.get("kind") == kind]


def _public(value: dict) -> dict:
    return {k: v for k, v in value.items() if k != "kind"}


# ── Epics ────────────────────────────────────────────────────────────────────


def list_epics() -> list[dict]:
    """Return all epics, oldest first, with slice and ticket counts."""
    records = get_store().query(EPIC_PREFIX)
    slice_counts: dict[str, int] = {}
    ticket_counts: dict[str, int] = {}
    for r in records:
        kind = r.value.get("kind")
        if kind == KIND_SLICE:
            slice_counts[r.value["epic_id"]] = slice_counts.get(r.value["epic_id"], 0) + 1
        elif kind == KIND_TICKET:
            ticket_counts[r.value["epic_id"]] = ticket_counts.get(r.value["epic_id"], 0) + 1

    epics = []
    for value in _values(records, KIND_EPIC):
        epic = _public(value)
        epic["slice_count"] = slice_counts.get(epic["epic_id"], 0)
        epic["ticket_count"] = ticket_counts.get(epic["epic_id"], 0)
        epics.append(epic)
    return sorted(epics, key=lambda e: e["created_at_iso"])


def create_epic(data: dict) -> dict:
    """Create an epic. Body: {epic_id?, title, notes?, assignees?}."""
    title = _text("title", data.get("title"), required=True)
    epic_id = _check_id("epic_id", data.get("epic_id") or generate_id("epic"))
    now = utc_now_iso()
    value = {
        "kind": KIND_EPIC,
        "epic_id": epic_id,
        "title": title,
        "notes": _text("notes", data.get("notes")),
        "assignees": _clean_assignees(data.get("assignees")),
        "created_at_iso": now,
        "updated_at_iso": now,
    }
    _create(epic_key(epic_id), value, "Epic", "epic_id", epic_id)
    logger.info("Epic created epic_id=%s", epic_id)
    return {**_public(value), "slice_count": 0, "ticket_count": 0}


def _require_epic(epic_id: str) -> dict:
    _require_ids("Epic", epic_id)
    record = get_store().get_or_none(epic_key(epic_id))
    if record is None:
        raise NotFoundError(resource="Epic", resource_id=epic_id)
    return record.value


def get_epic(epic_id: str) -> dict:
    epic = _public(_require_epic(epic_id))
    children = get_store().query(epic_children_prefix(epic_id))
    epic["slice_count"] = len(_values(children, KIND_SLICE))
    epic["ticket_count"] = len(_values(children, KIND_TICKET))
    return epic


def delete_epic(epic_id: str) -> None:
    """Delete an epic with all of its slices, tickets and relationship edges."""
    _require_epic(epic_id)
    store = get_store()
    children = store.query(epic_children_prefix(epic_id))
    removed_tickets = _delete_tickets(_values(children, KIND_TICKET))
    for record in children:
        if record.value.get("kind") != KIND_TICKET:
            _delete_key(record.key)
    _delete_key(epic_key(epic_id))
    logger.info("Epic deleted epic_id=%s tickets=%d", epic_id, removed_tickets)


# ── Slices ───────────────────────────────────────────────────────────────────


def list_slices(epic_id: str) -> list[dict]:
    _require_epic(epic_id)
    records = get_store().query(slices_prefix(epic_id))
    ticket_counts: dict[str, int] = {}
    for value in _values(records, KIND_TICKET):
        ticket_counts[value["slice_id"]] = ticket_counts.get(value["slice_id"], 0) + 1
    slices = []
    for value in _values(records, KIND_SLICE):
        item = _public(value)
        item["ticket_count"] = ticket_counts.get(item["slice_id"], 0)
        slices.append(item)
    return sorted(slices, key=lambda s: s["created_at_iso"])


def create_slice(epic_id: str, data: dict) -> dict:
    """Create a slice under an epic. Body: {slice_id?, title, notes?, assignees?}."""
    _require_epic(epic_id)
    title = _text("title", data.get("title"), required=True)
    slice_id = _check_id("slice_id", data.get("slice_id") or generate_id("slice"))
    now = utc_now_iso()
    value = {
        "kind": KIND_SLICE,
        "slice_id": slice_id,
        "epic_id": epic_id,
        "title": title,
        "notes": _text("notes", data.get("notes")),
        "assignees": _clean_assignees(data.get("assignees")),
        "created_at_iso": now,
        "updated_at_iso": now,
    }
    _create(slice_key(epic_id, slice_id), value, "Slice", "slice_id", slice_id)
    logger.info("Slice created epic_id=%s slice_id=%s", epic_id, slice_id)
    return {**_public(value), "ticket_count": 0}


def _require_slice(epic_id: str, slice_id: str) -> dict:
    _require_ids("Slice", epic_id, slice_id)
    record = get_store().get_or_none(slice_key(epic_id, slice_id))
    if record is None:
        raise NotFoundError(resource="Slice", resource_id=f"{epic_id}/{slice_id}")
    return record.value


def get_slice(epic_id: str, slice_id: str) -> dict:
    item = _public(_require_slice(epic_id, slice_id))
    tickets = get_store().query(slice_tickets_prefix(epic_id, slice_id))
    item["ticket_count"] = len(_values(tickets, KIND_TICKET))
    return item


def delete_slice(epic_id: str, slice_id: str) -> None:
    """Delete a slice and its tickets (with their relationship edges)."""
    _require_slice(epic_id, slice_id)
    tickets = _values(get_store().query(slice_tickets_prefix(epic_id, slice_id)), KIND_TICKET)
    removed = _delete_tickets(tickets)
    _delete_key(slice_key(epic_id, slice_id))
    logger.info("Slice deleted epic_id=%s slice_id=%s tickets=%d", epic_id, slice_id, removed)


# ── Tickets ──────────────────────────────────────────────────────────────────


def list_tickets(epic_id: str, slice_id: str | None = None) -> list[dict]:
    """Tickets of one slice, or of every slice in the epic when slice_id is None."""
    if slice_id:
        _require_slice(epic_id, slice_id)
        prefix = slice_tickets_prefix(epic_id, slice_id)
    else:
        _require_epic(epic_id)
        prefix = slices_prefix(epic_id)
    tickets = [_public(v) for v in _values(get_store().query(prefix), KIND_TICKET)]
    return sorted(tickets, key=lambda t: (t["created_at"], t["ticket_id"]))


def create_ticket(epic_id: str, slice_id: str, data: dict) -> dict:
    """
    Create a ticket in a slice.

    Body: {title, intent, description?, type?, priority?, assignee?, notes?}
    New tickets always start in status "open".
    """
    _require_slice(epic_id, slice_id)
    title = _text("title", data.get("title"))
    intent = _text("intent", data.get("intent"))
    missing = [f for f, v in (("title", title), ("intent", intent)) if not v]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} required", details={f: "missing" for f in missing},
        )
    ticket_type = data.get("type") or DEFAULT_TICKET_TYPE
    _check_choice("type", ticket_type, TICKET_TYPES)
    if data.get("priority") is not None:
        _check_choice("priority", data["priority"], TICKET_PRIORITIES)

    ticket_id = generate_id("ticket")
    millis, iso = utc_now_millis(), utc_now_iso()
    value = {
        "kind": KIND_TICKET,
        "ticket_id": ticket_id,
        "epic_id": epic_id,
        "slice_id": slice_id,
        "title": title,
        "intent": intent,
        "description": _text("description", data.get("description")),
        "type": ticket_type,
        "status": DEFAULT_TICKET_STATUS,
        "priority": data.get("priority"),
        "assignee": _text("assignee", data.get("assignee")),
        "notes": _text("notes", data.get("notes")),
        "created_at": millis,
        "updated_at": millis,
        "created_at_iso": iso,
        "updated_at_iso": iso,
    }
    _create(ticket_key(epic_id, slice_id, ticket_id), value, "Ticket", "ticket_id", ticket_id)
    logger.info("Ticket created %s/%s/%s", epic_id, slice_id, ticket_id)
    return {**_public(value), "blocks_tickets": [], "blocked_by_tickets": []}


def _require_ticket(epic_id: str, slice_id: str, ticket_id: str) -> Record:
    _require_ids("Ticket", epic_id, slice_id, ticket_id)
    record = get_store().get_or_none(ticket_key(epic_id, slice_id, ticket_id))
    if record is None:
        raise NotFoundError(resource="Ticket", resource_id=f"{epic_id}/{slice_id}/{ticket_id}")
    return record


def get_ticket(epic_id: str, slice_id: str, ticket_id: str) -> dict:
    """Ticket with blocks_tickets / blocked_by_tickets derived from the graph."""
    ticket = _public(_require_ticket(epic_id, slice_id, ticket_id).value)
    ref = TicketRef(epic_id, slice_id, ticket_id)
    views = partition(ref, get_relationship_manager().list_relationships(ref))
    ticket["blocks_tickets"] = [e.blocked.ticket_id for e in views["blocks"]]
    ticket["blocked_by_tickets"] = [e.blocker.ticket_id for e in views["blocked_by"]]
    return ticket


def update_ticket(epic_id: str, slice_id: str, ticket_id: str, data: dict) -> dict:
    """Apply a partial update; status, type and priority are validated."""
    changes = {k: data[k] for k in _TICKET_UPDATABLE if k in data}
    if not changes:
        raise ValidationError(
            "No updatable fields supplied",
            details={"allowed": list(_TICKET_UPDATABLE)},
        )
    for field in ("title", "intent"):
        if field in changes:
            changes[field] = _text(field, changes[field])
            if not changes[field]:
                raise ValidationError(f"{field} cannot be empty", details={field: "empty"})
    for field in ("description", "assignee", "notes"):
        if field in changes:
            changes[field] = _text(field, changes[field])
    if "status" in changes:
        _check_choice("status", changes["status"], TICKET_STATUSES)
    if "type" in changes:
        _check_choice("type", changes["type"], TICKET_TYPES)
    if changes.get("priority") is not None:
        _check_choice("priority", changes["priority"], TICKET_PRIORITIES)

    store = get_store()
    attempts = current_app.config.get("RELATIONSHIP_MAX_ATTEMPTS", 5)
    for _attempt in range(attempts):
        record = _require_ticket(epic_id, slice_id, ticket_id)
        value = {**record.value, **changes, "updated_at": utc_now_millis(), "updated_at_iso": utc_now_iso()}
        try:
            store.put(record.key, value, expected_version=record.version)
        except VersionConflict:
            logger.warning("Ticket update conflict %s, retrying", record.key)
            continue
        if "status" in changes and changes["status"] != record.value.get("status"):
            logger.info(
                "Ticket %s/%s/%s status %s -> %s",
                epic_id, slice_id, ticket_id, record.value.get("status"), changes["status"],
            )
        return get_ticket(epic_id, slice_id, ticket_id)
    raise WriteConflictError(resource=f"Ticket {ticket_id}", attempts=attempts)


def delete_ticket(epic_id: str, slice_id: str, ticket_id: str) -> None:
    """Remove the ticket's relationship edges, then the ticket itself."""
    _require_ticket(epic_id, slice_id, ticket_id)
    _delete_tickets([{"epic_id": epic_id, "slice_id": slice_id, "ticket_id": ticket_id}])
    logger.info("Ticket deleted %s/%s/%s", epic_id, slice_id, ticket_id)


def _delete_tickets(tickets: list[dict]) -> int:
    # Record first, edges second: a concurrent add either sees the ticket
    # gone on its post-write check or lands before the cascade runs.
    manager = get_relationship_manager()
    for t in tickets:
        ref = TicketRef(t["epic_id"], t["slice_id"], t["ticket_id"])
        _delete_key(ticket_key(ref.epic_id, ref.slice_id, ref.ticket_id))
        manager.cascade_delete_for_ticket(ref)
    return len(tickets)


def _delete_key(key: str) -> None:
    try:
        get_store().delete(key)
    except KeyNotFound:
        # Removed by a concurrent delete; the end state is the same.
        logger.debug("Key already gone during delete: %s", key)


# ── Relationship endpoints support ───────────────────────────────────────────


def ticket_ref(epic_id: str, slice_id: str, ticket_id: str) -> TicketRef:
    """Reference to an existing ticket (NotFoundError otherwise)."""
    _require_ticket(epic_id, slice_id, ticket_id)
    return TicketRef(epic_id, slice_id, ticket_id)


def find_ticket_ref(epic_id: str, ticket_id: str, slice_id: str | None = None) -> TicketRef:
    """
    Resolve a ticket id to a full reference.

    With slice_id the lookup is direct; without it every slice of the epic is
    searched and an id present in more than one slice is rejected.
    """
    _require_ids("Ticket", epic_id, ticket_id)
    if slice_id:
        return ticket_ref(epic_id, slice_id, ticket_id)
    matches = [
        v for v in _values(get_store().query(slices_prefix(epic_id)), KIND_TICKET)
        if v["ticket_id"] == ticket_id
    ]
    if not matches:
        raise NotFoundError(resource="Ticket", resource_id=f"{epic_id}/{ticket_id}")
    if len(matches) > 1:
        raise ValidationError(
            f"Ticket id {ticket_id} exists in several slices; pass slice_id",
            details={"slice_ids": [m["slice_id"] for m in matches]},
        )
    return TicketRef(epic_id, matches[0]["slice_id"], ticket_id)
