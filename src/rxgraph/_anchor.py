"""Data anchor — plain Python structures that hold all reactive state.

One Anchor belongs to one Engine. Signals, Derivations and Observers are
thin handles holding the anchor and an integer id; everything they know
lives here, keyed by that id.
"""

from __future__ import annotations

import itertools
from typing import Callable, Iterable

SIGNAL = "signal"
DERIVATION = "derivation"
OBSERVER = "observer"

# Cached value of a derivation that has never evaluated successfully.
UNSET = object()


class Anchor:
    __slots__ = (
        "kinds",
        "names",
        "values",
        "revisions",
        "changed_at",
        "cached_at",
        "stale",
        "fns",
        "dependencies",
        "retry_on",
        "dependents",
        "disposed",
        "evaluating",
        "clock",
        "_ids",
    )

    def __init__(self) -> None:
        self.kinds: dict[int, str] = {}
        self.names: dict[int, str] = {}

        # Signal payloads and derivation caches
        self.values: dict[int, object] = {}
        self.revisions: dict[int, int] = {}  # writes / successful evaluations
        self.changed_at: dict[int, int] = {}  # clock tick of the last change
        self.cached_at: dict[int, int] = {}  # clock tick of the last evaluation
        self.stale: dict[int, bool] = {}

        # Derivation + Observer state
        self.fns: dict[int, Callable] = {}
        self.dependencies: dict[int, frozenset[int]] = {}
        self.retry_on: dict[int, frozenset[int]] = {}
        self.disposed: dict[int, bool] = {}

        # Reverse edges: node -> nodes that read it
        self.dependents: dict[int, set[int]] = {}
        self.evaluating: set[int] = set()

        self.clock = 0
        self._ids = itertools.count(1)

    def new_node(self, kind: str, name: str | None = None) -> int:
        # Ids are handed out in declaration order; the scheduler relies on it.
        node_id = next(self._ids)
        self.kinds[node_id] = kind
        self.names[node_id] = name or f"{kind}-{node_id}"
        self.dependents[node_id] = set()
        self.revisions[node_id] = 0
        self.changed_at[node_id] = 0
        if kind != SIGNAL:
            self.dependencies[node_id] = frozenset()
            self.retry_on[node_id] = frozenset()
            self.disposed[node_id] = False
        return node_id

    def tick(self) -> int:
        self.clock += 1
        return self.clock

    def relink(self, node_id: int, reads: Iterable[int], *, retry: Iterable[int] = ()) -> None:
        """Replace node_id's recorded dependencies and retry edges."""
        self.unlink(node_id)
        deps = frozenset(reads)
        extra = frozenset(retry) - deps
        self.dependencies[node_id] = deps
        self.retry_on[node_id] = extra
        for dep in deps | extra:
            self.dependents[dep].add(node_id)

    def unlink(self, node_id: int) -> None:
        for dep in self.dependencies[node_id] | self.retry_on[node_id]:
            self.dependents[dep].discard(node_id)
        self.dependencies[node_id] = frozenset()
        self.retry_on[node_id] = frozenset()
