"""
Ticket Relationships — Service Layer.

Business logic for directed "blocks / blocked-by" edges between tickets:
    - Invariants:   no self-block, no duplicate ordered pair, no cycle
    - Storage:      one versioned graph document per scope (an epic, or one
                    global document when cross-epic blocking is enabled)
    - Concurrency:  read → validate → conditional write; on a version
                    conflict re-read and re-validate, bounded attempts
    - Cascade:      remove every edge touching a ticket that is being deleted

The manager is stateless: every call reads the graph from the store, which
is the single source of truth.
"""

from __future__ import annotations

import logging
import random
import time
from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from typing import Callable, Iterable

from flask import current_app

from app.core.exceptions import (
    CycleDetectedError,
    DuplicateEdgeError,
    NotFoundError,
    OperationTimeoutError,
    SelfReferenceError,
    ValidationError,
    WriteConflictError,
)
from app.store import KeyValueStore, VersionConflict, get_store
from app.store.keys import GLOBAL_GRAPH_KEY, KIND_GRAPH, epic_graph_key, ticket_key
from app.utils.helpers import utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_BACKOFF_SECONDS = 0.05


# ── Value types ──────────────────────────────────────────────────────────────


@dataclass(frozen=True, order=True)
class TicketRef:
    """Opaque (epic, slice, ticket) identifier triple."""

    epic_id: str
    slice_id: str
    ticket_id: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TicketRef":
        return cls(data["epic_id"], data["slice_id"], data["ticket_id"])

    def __str__(self) -> str:
        return f"{self.epic_id}/{self.slice_id}/{self.ticket_id}"


@dataclass(frozen=True)
class Edge:
    """``blocker`` must be resolved before ``blocked`` can proceed."""

    blocker: TicketRef
    blocked: TicketRef
    created_at: str
    created_by: str | None = None

    @property
    def pair(self) -> tuple[TicketRef, TicketRef]:
        return self.blocker, self.blocked

    def involves(self, ticket: TicketRef) -> bool:
        return ticket == self.blocker or ticket == self.blocked

    def to_dict(self) -> dict:
        return {
            "blocker": self.blocker.to_dict(),
            "blocked": self.blocked.to_dict(),
            "created_at": self.created_at,
            "created_by": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Edge":
        return cls(
            blocker=TicketRef.from_dict(data["blocker"]),
            blocked=TicketRef.from_dict(data["blocked"]),
            created_at=data["created_at"],
            created_by=data.get("created_by"),
        )


# ── Graph algorithms ─────────────────────────────────────────────────────────


def find_path(edges: Iterable[Edge], start: TicketRef, goal: TicketRef) -> list[TicketRef] | None:
    """
    Breadth-first search along "blocks" edges from start to goal.

    Returns the shortest chain [start, …, goal], or None if goal is
    unreachable. start == goal yields [start].
    """
    adjacency: dict[TicketRef, list[TicketRef]] = defaultdict(list)
    for edge in edges:
        adjacency[edge.blocker].append(edge.blocked)

    parents: dict[TicketRef, TicketRef | None] = {start: None}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        if current == goal:
            path = []
            node: TicketRef | None = current
            while node is not None:
                path.append(node)
                node = parents[node]
            return path[::-1]
        for nxt in adjacency.get(current, ()):
            if nxt not in parents:
                parents[nxt] = current
                queue.append(nxt)
    return None


def partition(ticket: TicketRef, edges: Iterable[Edge]) -> dict[str, list[Edge]]:
    """Split edges touching *ticket* into its "blocks" and "blocked_by" views."""
    views: dict[str, list[Edge]] = {"blocks": [], "blocked_by": []}
    for edge in edges:
        if edge.blocker == ticket:
            views["blocks"].append(edge)
        elif edge.blocked == ticket:
            views["blocked_by"].append(edge)
    return views


# ── Manager ──────────────────────────────────────────────────────────────────


class RelationshipGraphManager:
    """
    Mediates every read and write of ticket relationship edges.

    Args:
        store: Key-value store holding the graph documents.
        ticket_lookup: ``ref -> bool`` existence check; defaults to a store
            lookup of the ticket record.
        max_attempts: Conditional-write attempts before WriteConflictError.
        timeout_seconds: Default per-operation deadline.
        backoff_seconds: Base sleep between conflicting attempts (jittered,
            grows linearly with the attempt number). 0 disables sleeping.
        cross_epic: When True all edges share one global graph and may join
            tickets of different epics; otherwise each epic has its own graph
            and cross-epic pairs are rejected.
        clock: Returns the ISO timestamp stamped on new edges.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ticket_lookup: Callable[[TicketRef], bool] | None = None,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        cross_epic: bool = False,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._store = store
        self._ticket_lookup = ticket_lookup or self._ticket_in_store
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds
        self.backoff_seconds = backoff_seconds
        self.cross_epic = cross_epic
        self._clock = clock

    # ── Operations ───────────────────────────────────────────────────────

    def add_relationship(
        self,
        blocker: TicketRef,
        blocked: TicketRef,
        creator: str | None = None,
        *,
        timeout: float | None = None,
    ) -> Edge:
        """
        Persist blocker → blocked.

        Raises:
            SelfReferenceError: blocker == blocked.
            ValidationError: tickets in different epics under epic scoping.
            NotFoundError: either ticket does not exist.
            DuplicateEdgeError: the ordered pair already exists.
            CycleDetectedError: blocked already (transitively) blocks blocker.
            WriteConflictError: retries exhausted under concurrent writes.
            OperationTimeoutError: deadline expired before the write.
            StorageUnavailableError: transient store failure.
        """
        if blocker == blocked:
            raise SelfReferenceError(str(blocker))
        if not self.cross_epic and blocker.epic_id != blocked.epic_id:
            raise ValidationError(
                "Blocking relationships must stay within one epic",
                details={"blocker_epic_id": blocker.epic_id, "blocked_epic_id": blocked.epic_id},
            )
        deadline = self._deadline(timeout)
        for ref in (blocker, blocked):
            if not self._ticket_lookup(ref):
                raise NotFoundError(resource="Ticket", resource_id=str(ref))

        def mutate(edges: list[Edge]):
            if any(e.pair == (blocker, blocked) for e in edges):
                raise DuplicateEdgeError(str(blocker), str(blocked))
            path = find_path(edges, blocked, blocker)
            if path is not None:
                raise CycleDetectedError(str(blocker), str(blocked), [str(p) for p in path])
            edge = Edge(blocker=blocker, blocked=blocked, created_at=self._clock(), created_by=creator)
            return edges + [edge], edge

        edge = self._apply(self._scope_key(blocker), mutate, deadline, operation="add_relationship")

        # Both endpoints must still exist after the write. Ticket deletes drop
        # the record before cascading, so a concurrent delete is seen here.
        gone = [ref for ref in (blocker, blocked) if not self._ticket_lookup(ref)]
        if gone:
            self._discard(edge)
            raise NotFoundError(resource="Ticket", resource_id=str(gone[0]))

        logger.info("Relationship added %s -> %s by=%s", blocker, blocked, creator)
        return edge

    def remove_relationship(
        self,
        blocker: TicketRef,
        blocked: TicketRef,
        *,
        timeout: float | None = None,
    ) -> None:
        """Delete blocker → blocked; NotFoundError if the edge does not exist."""
        deadline = self._deadline(timeout)

        def mutate(edges: list[Edge]):
            remaining = [e for e in edges if e.pair != (blocker, blocked)]
            if len(remaining) == len(edges):
                raise NotFoundError(resource="Relationship", resource_id=f"{blocker} -> {blocked}")
            return remaining, None

        self._apply(self._scope_key(blocker), mutate, deadline, operation="remove_relationship")
        logger.info("Relationship removed %s -> %s", blocker, blocked)

    def list_relationships(self, ticket: TicketRef) -> list[Edge]:
        """Edges where *ticket* is blocker or blocked, oldest first."""
        edges, _version = self._read(self._scope_key(ticket))
        return sorted((e for e in edges if e.involves(ticket)), key=lambda e: e.created_at)

    def cascade_delete_for_ticket(self, ticket: TicketRef, *, timeout: float | None = None) -> int:
        """Remove every edge touching *ticket*; returns how many were removed."""
        deadline = self._deadline(timeout)

        def mutate(edges: list[Edge]):
            remaining = [e for e in edges if not e.involves(ticket)]
            removed = len(edges) - len(remaining)
            return (remaining if removed else None), removed

        removed = self._apply(
            self._scope_key(ticket), mutate, deadline, operation="cascade_delete_for_ticket",
        )
        if removed:
            logger.info("Cascade removed %d relationship(s) for ticket %s", removed, ticket)
        return removed

    # ── Internals ────────────────────────────────────────────────────────

    def _discard(self, edge: Edge) -> None:
        """Roll back a just-written edge; a fresh deadline so cleanup is not cut short."""

        def mutate(edges: list[Edge]):
            remaining = [e for e in edges if e.pair != edge.pair]
            return (remaining if len(remaining) != len(edges) else None), None

        self._apply(
            self._scope_key(edge.blocker), mutate, self._deadline(None), operation="discard_relationship",
        )
        logger.warning("Relationship %s -> %s discarded: endpoint deleted concurrently",
                       edge.blocker, edge.blocked)

    def _scope_key(self, ticket: TicketRef) -> str:
        return GLOBAL_GRAPH_KEY if self.cross_epic else epic_graph_key(ticket.epic_id)

    def _ticket_in_store(self, ref: TicketRef) -> bool:
        return self._store.get_or_none(ticket_key(ref.epic_id, ref.slice_id, ref.ticket_id)) is not None

    def _read(self, key: str) -> tuple[list[Edge], int]:
        """Current edges and document version (0 when the graph does not exist yet)."""
        record = self._store.get_or_none(key)
        if record is None:
            return [], 0
        return [Edge.from_dict(e) for e in record.value.get("edges", [])], record.version

    def _document(self, key: str, edges: list[Edge]) -> dict:
        return {
            "kind": KIND_GRAPH,
            "scope": "all" if key == GLOBAL_GRAPH_KEY else "epic",
            "edges": [e.to_dict() for e in edges],
        }

    def _apply(self, key: str, mutate, deadline: tuple[float, float], *, operation: str):
        """
        Optimistic read-modify-write of the graph document at *key*.

        ``mutate(edges)`` validates against a fresh snapshot and returns
        ``(new_edges, result)``; ``new_edges`` of None means nothing to write.
        Invariant violations raised by ``mutate`` propagate immediately.
        """
        for attempt in range(1, self.max_attempts + 1):
            self._check_deadline(deadline, operation)
            edges, version = self._read(key)
            new_edges, result = mutate(edges)
            if new_edges is None:
                return result
            self._check_deadline(deadline, operation)
            try:
                self._store.put(key, self._document(key, new_edges), expected_version=version)
                return result
            except VersionConflict:
                logger.warning(
                    "Graph write conflict key=%s op=%s attempt=%d/%d",
                    key, operation, attempt, self.max_attempts,
                    extra={"event_type": "graph_write_conflict", "graph_key": key,
                           "operation": operation, "attempt": attempt},
                )
                if attempt < self.max_attempts:
                    self._backoff(attempt, deadline)
        raise WriteConflictError(resource=f"Relationship graph {key}", attempts=self.max_attempts)

    def _deadline(self, timeout: float | None) -> tuple[float, float]:
        seconds = self.timeout_seconds if timeout is None else timeout
        return time.monotonic() + seconds, seconds

    @staticmethod
    def _check_deadline(deadline: tuple[float, float], operation: str) -> None:
        expires_at, seconds = deadline
        if time.monotonic() >= expires_at:
            raise OperationTimeoutError(operation, seconds)

    def _backoff(self, attempt: int, deadline: tuple[float, float]) -> None:
        if self.backoff_seconds <= 0:
            return
        remaining = deadline[0] - time.monotonic()
        delay = self.backoff_seconds * attempt * random.uniform(0.5, 1.5)
        time.sleep(max(0.0, min(delay, remaining)))


def get_relationship_manager() -> RelationshipGraphManager:
    """Build a manager from the current app's config and store."""
    cfg = current_app.config
    return RelationshipGraphManager(
        get_store(),
        max_attempts=cfg.get("RELATIONSHIP_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
        timeout_seconds=cfg.get("RELATIONSHIP_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        backoff_seconds=cfg.get("RELATIONSHIP_RETRY_BACKOFF_SECONDS", DEFAULT_BACKOFF_SECONDS),
        cross_epic=cfg.get("ALLOW_CROSS_EPIC_RELATIONSHIPS", False),
    )
