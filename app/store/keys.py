"""
Store key layout.

Single-table hierarchy, ``#``-separated:

    EPIC#<epic>                              epic
    EPIC#<epic>#SLICE#<slice>                slice
    EPIC#<epic>#SLICE#<slice>#TICKET#<id>    ticket
    EPIC#<epic>#GRAPH                        relationship graph (epic scope)
    GRAPH#ALL                                relationship graph (cross-epic scope)

Child prefixes always end with ``#`` so ``EPIC#e1`` never matches ``EPIC#e10``.
"""

EPIC_PREFIX = "EPIC#"
GLOBAL_GRAPH_KEY = "GRAPH#ALL"

KIND_EPIC = "epic"
KIND_SLICE = "slice"
KIND_TICKET = "ticket"
KIND_GRAPH = "graph"


def epic_key(epic_id: str) -> str:
    return f"{EPIC_PREFIX}{epic_id}"


def epic_children_prefix(epic_id: str) -> str:
    return f"{epic_key(epic_id)}#"


def slices_prefix(epic_id: str) -> str:
    return f"{epic_key(epic_id)}#SLICE#"


def slice_key(epic_id: str, slice_id: str) -> str:
    return f"{slices_prefix(epic_id)}{slice_id}"


def slice_tickets_prefix(epic_id: str, slice_id: str) -> str:
    return f"{slice_key(epic_id, slice_id)}#TICKET#"


def ticket_key(epic_id: str, slice_id: str, ticket_id: str) -> str:
    return f"{slice_tickets_prefix(epic_id, slice_id)}{ticket_id}"


def epic_graph_key(epic_id: str) -> str:
    return f"{epic_key(epic_id)}#GRAPH"
