"""Observers — side effects re-run when what they read changes.

Unlike a Derivation (lazy, pulled by get()), an Observer is pushed: the
scheduler runs it once at startup and again in every flush that follows a
write to one of its dependencies. Observers have no value to read.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rxgraph._tracking import current_tracking, tracking
from rxgraph.errors import EvaluationFailure, ReactiveError

if TYPE_CHECKING:
    from rxgraph._anchor import Anchor


class Observer:
    """Handle to a side-effecting node. Call .dispose() to stop it."""

    __slots__ = ("_anchor", "_id")

    def __init__(self, anchor: Anchor, node_id: int) -> None:
        self._anchor = anchor
        self._id = node_id

    @property
    def name(self) -> str:
        return self._anchor.names[self._id]

    @property
    def disposed(self) -> bool:
        return self._anchor.disposed[self._id]

    @property
    def dependencies(self) -> frozenset[int]:
        return self._anchor.dependencies[self._id]

    def _run(self) -> None:
        """Run the function, re-tracking dependencies.

        Observers keep whatever their latest run read, successful or not, so
        a failing output recovers as soon as one of its inputs changes.
        """
        a = self._anchor
        if a.disposed[self._id]:
            return

        ctx = None
        try:
            with tracking(a, self._id) as ctx:
                a.fns[self._id]()
        except ReactiveError:
            raise
        except Exception as exc:
            raise EvaluationFailure(self.name) from exc
        finally:
            if a.disposed[self._id]:
                a.unlink(self._id)
            elif ctx is not None:
                a.relink(self._id, ctx.reads)

    def keep_dependencies(self) -> None:
        """Carry the previous run's dependencies over into the current run.

        For observers that decide to skip their work this time but must still
        re-run when the same inputs change. Only meaningful while the
        observer itself is running.
        """
        ctx = current_tracking()
        if ctx is not None and ctx.anchor is self._anchor and ctx.owner == self._id:
            ctx.reads |= self._anchor.dependencies[self._id]

    def dispose(self) -> None:
        """Stop this observer. Disconnects from all dependencies."""
        self._anchor.disposed[self._id] = True
        self._anchor.unlink(self._id)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Observer)
            and other._anchor is self._anchor
            and other._id == self._id
        )

    def __hash__(self) -> int:
        return hash((id(self._anchor), self._id))

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "active"
        return f"Observer({self.name}, {state})"
