"""Derivations — cached values computed from signals and other derivations.

A Derivation wraps a function. When evaluated it tracks which nodes the
function reads and caches the result together with the clock tick it was
computed at. Writes upstream only mark it stale; the function runs again on
the next get(), and only if something it read last time actually changed.

If the function raises, the previous value and dependency set stay in place
and the error reaches whoever called get().
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, TypeVar

from rxgraph import _anchor
from rxgraph._tracking import record_read, tracking
from rxgraph.errors import CyclicDependency, EvaluationFailure, ReactiveError

if TYPE_CHECKING:
    from rxgraph._anchor import Anchor

T = TypeVar("T")


class Derivation(Generic[T]):
    """Handle to a lazily recomputed, cached value."""

    __slots__ = ("_anchor", "_id")

    def __init__(self, anchor: Anchor, node_id: int) -> None:
        self._anchor = anchor
        self._id = node_id

    @property
    def name(self) -> str:
        return self._anchor.names[self._id]

    @property
    def revision(self) -> int:
        """Number of successful evaluations so far."""
        return self._anchor.revisions[self._id]

    @property
    def dependencies(self) -> frozenset[int]:
        return self._anchor.dependencies[self._id]

    def get(self) -> T:
        """Read the value, recomputing first if a dependency changed."""
        a = self._anchor
        record_read(a, self._id)
        if self._id in a.evaluating:
            raise CyclicDependency(self.name)
        self._refresh()
        return a.values[self._id]

    def is_valid(self) -> bool:
        """True if the cached value can be returned without running the function."""
        a = self._anchor
        if a.values[self._id] is _anchor.UNSET or a.retry_on[self._id]:
            return False
        stamp = a.cached_at[self._id]
        for dep in a.dependencies[self._id]:
            if a.changed_at[dep] > stamp:
                return False
            if a.kinds[dep] == _anchor.DERIVATION and a.stale[dep]:
                return False
        return True

    def _refresh(self) -> None:
        # A stale derivation input makes this node invalid; the function's own
        # get() calls pull whatever inputs it still reads.
        a = self._anchor
        if not a.stale[self._id]:
            return
        if self.is_valid():
            a.stale[self._id] = False
        else:
            self._recompute()

    def _recompute(self) -> None:
        a = self._anchor
        ctx = None
        a.evaluating.add(self._id)
        try:
            with tracking(a, self._id) as ctx:
                value = a.fns[self._id]()
        except ReactiveError:
            self._remember_attempt(ctx)
            raise
        except Exception as exc:
            self._remember_attempt(ctx)
            raise EvaluationFailure(self.name) from exc
        finally:
            a.evaluating.discard(self._id)

        a.relink(self._id, ctx.reads)
        a.values[self._id] = value
        a.revisions[self._id] += 1
        a.cached_at[self._id] = a.changed_at[self._id] = a.tick()
        a.stale[self._id] = False

    def _remember_attempt(self, ctx) -> None:
        # Keep the last good dependency set; also listen to what the failed
        # attempt read so a fix upstream re-triggers this node.
        a = self._anchor
        if ctx is not None:
            a.relink(self._id, a.dependencies[self._id], retry=ctx.reads - {self._id})

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Derivation)
            and other._anchor is self._anchor
            and other._id == self._id
        )

    def __hash__(self) -> int:
        return hash((id(self._anchor), self._id))

    def __repr__(self) -> str:
        a = self._anchor
        val = a.values[self._id]
        state = "stale" if a.stale[self._id] or val is _anchor.UNSET else f"cached={val!r}"
        return f"Derivation({self.name}, {state})"
