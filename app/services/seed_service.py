"""
Demo data seeding.

Creates a small epic with two slices, a handful of tickets and a blocking
chain between them. Used by the ``flask seed-demo`` command.
"""

import logging

import app.services.ticket_service as ticket_svc
from app.core.exceptions import ConflictError
from app.services.relationship_service import TicketRef, get_relationship_manager

logger = logging.getLogger(__name__)

DEMO_EPIC_ID = "demo"

_SLICES = [
    {"slice_id": "backend", "title": "Backend API"},
    {"slice_id": "frontend", "title": "Web client"},
]

_TICKETS = [
    ("backend", {"title": "Design schema", "intent": "Agree on the record layout", "type": "spike"}),
    ("backend", {"title": "Implement endpoints", "intent": "Expose CRUD over HTTP", "type": "feature"}),
    ("frontend", {"title": "Ticket board", "intent": "Show tickets per slice", "type": "feature"}),
    ("frontend", {"title": "Blocked badge", "intent": "Flag tickets with open blockers", "type": "task"}),
]


def seed_demo() -> dict:
    """
    Seed the demo epic. Returns counts of what was created.

    Raises ConflictError if the demo epic already exists.
    """
    ticket_svc.create_epic({"epic_id": DEMO_EPIC_ID, "title": "Demo epic"})
    for item in _SLICES:
        ticket_svc.create_slice(DEMO_EPIC_ID, item)

    refs: list[TicketRef] = []
    for slice_id, data in _TICKETS:
        ticket = ticket_svc.create_ticket(DEMO_EPIC_ID, slice_id, data)
        refs.append(TicketRef(DEMO_EPIC_ID, slice_id, ticket["ticket_id"]))

    # schema -> endpoints -> board -> badge
    manager = get_relationship_manager()
    for blocker, blocked in zip(refs, refs[1:]):
        manager.add_relationship(blocker, blocked, creator="seed")

    counts = {"epics": 1, "slices": len(_SLICES), "tickets": len(refs), "relationships": len(refs) - 1}
    logger.info("Demo data seeded: %s", counts)
    return counts


def seed_demo_if_missing() -> dict | None:
    """Seed unless the demo epic is already present; returns None when skipped."""
    try:
        return seed_demo()
    except ConflictError:
        logger.info("Demo epic %r already exists — skipping", DEMO_EPIC_ID)
        return None
