"""
tests/test_relationship_concurrency.py — Racing writers on one graph.

Threads share a single MemoryStore; the conditional write is the only
serialisation point, so these exercise the read → validate → conditional
write loop end to end.
"""

import threading

import pytest

from app.core.exceptions import CycleDetectedError, DuplicateEdgeError, WriteConflictError
from app.services.relationship_service import RelationshipGraphManager, TicketRef, find_path
from app.store import MemoryStore


def _ref(ticket_id):
    return TicketRef("e1", "s1", ticket_id)


def _manager(store):
    return RelationshipGraphManager(
        store, ticket_lookup=lambda ref: True, max_attempts=50, backoff_seconds=0.001,
    )


def _run_concurrently(*calls):
    """Start every call behind one barrier; collect (result, exception) per call."""
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def _worker(i, fn):
        barrier.wait()
        try:
            outcomes[i] = ("ok", fn())
        except Exception as exc:  # collected for assertions
            outcomes[i] = ("error", exc)

    threads = [threading.Thread(target=_worker, args=(i, fn)) for i, fn in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


@pytest.mark.parametrize("round_", range(10))
def test_opposite_edges_at_most_one_wins(round_):
    store = MemoryStore()
    a, b = _ref("a"), _ref("b")
    outcomes = _run_concurrently(
        lambda: _manager(store).add_relationship(a, b),
        lambda: _manager(store).add_relationship(b, a),
    )
    winners = [o for o in outcomes if o[0] == "ok"]
    losers = [o for o in outcomes if o[0] == "error"]
    assert len(winners) == 1
    assert isinstance(losers[0][1], CycleDetectedError)
    assert len(_manager(store).list_relationships(a)) == 1


def test_same_edge_added_once():
    store = MemoryStore()
    a, b = _ref("a"), _ref("b")
    outcomes = _run_concurrently(*[lambda: _manager(store).add_relationship(a, b) for _ in range(6)])
    assert sum(1 for o in outcomes if o[0] == "ok") == 1
    assert all(isinstance(o[1], DuplicateEdgeError) for o in outcomes if o[0] == "error")
    assert len(_manager(store).list_relationships(a)) == 1


def test_concurrent_ring_never_closes():
    """Writers race to add every edge of a 5-ring; the stored graph stays acyclic."""
    store = MemoryStore()
    ring = [_ref(f"r{i}") for i in range(5)]
    pairs = list(zip(ring, ring[1:] + ring[:1]))
    outcomes = _run_concurrently(*[
        (lambda p=p: _manager(store).add_relationship(*p)) for p in pairs
    ])
    errors = [o[1] for o in outcomes if o[0] == "error"]
    assert len(errors) == 1
    assert isinstance(errors[0], CycleDetectedError)

    edges = {e for r in ring for e in _manager(store).list_relationships(r)}
    assert len(edges) == 4
    for edge in edges:
        assert find_path(edges, edge.blocked, edge.blocker) is None


def test_independent_edges_all_land():
    store = MemoryStore()
    pairs = [(_ref(f"x{i}"), _ref(f"y{i}")) for i in range(8)]
    outcomes = _run_concurrently(*[
        (lambda p=p: _manager(store).add_relationship(*p)) for p in pairs
    ])
    assert all(o[0] == "ok" for o in outcomes), [o for o in outcomes if o[0] != "ok"]
    for blocker, _blocked in pairs:
        assert len(_manager(store).list_relationships(blocker)) == 1


def test_exhausted_retries_leave_graph_consistent():
    """With a single attempt, losers give up cleanly instead of overwriting."""
    store = MemoryStore()
    pairs = [(_ref(f"p{i}"), _ref(f"q{i}")) for i in range(6)]
    outcomes = _run_concurrently(*[
        (lambda p=p: RelationshipGraphManager(
            store, lambda r: True, max_attempts=1, backoff_seconds=0,
        ).add_relationship(*p))
        for p in pairs
    ])
    landed = [o for o in outcomes if o[0] == "ok"]
    assert landed
    assert all(isinstance(o[1], WriteConflictError) for o in outcomes if o[0] == "error")
    stored = sum(len(_manager(store).list_relationships(b)) for b, _ in pairs)
    assert stored == len(landed)
