"""Invalidation scheduler — coalesces writes into one observer pass.

    IDLE --write--> COLLECTING --batch ends--> FLUSHING --queue empty--> IDLE

A write marks everything downstream of it: derivations go stale (they are
lazy and recompute on their next read), observers join the run queue. Outside
a batch the flush starts right away; inside one it waits for the outermost
batch to close. Writes made by observers while flushing are folded into a
further round of the same flush, up to max_rounds.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Callable

from rxgraph import _anchor
from rxgraph._tracking import current_tracking
from rxgraph.errors import CyclicUpdate, EvaluationFailure, ReactiveError
from rxgraph.observer import Observer

if TYPE_CHECKING:
    from rxgraph._anchor import Anchor

    ErrorSink = Callable[[Observer, EvaluationFailure], None]

logger = logging.getLogger("rxgraph.scheduler")

DEFAULT_MAX_FLUSH_ROUNDS = 100


class State(enum.Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    FLUSHING = "flushing"


def log_failure(observer: Observer, failure: EvaluationFailure) -> None:
    """Default error sink: log and carry on with the flush."""
    logger.error("Observer %s failed", observer.name, exc_info=failure)


class Scheduler:
    def __init__(
        self,
        anchor: Anchor,
        *,
        max_rounds: int = DEFAULT_MAX_FLUSH_ROUNDS,
        error_sink: ErrorSink | None = None,
    ) -> None:
        if max_rounds < 1:
            raise ValueError(f"max_rounds must be at least 1, got {max_rounds}")
        self._anchor = anchor
        self.max_rounds = max_rounds
        self.error_sink = error_sink or log_failure
        self.state = State.IDLE
        self._batch_depth = 0
        self._pending: set[int] = set()  # observer ids
        self._invalidated: set[int] = set()  # everything marked this cycle

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def invalidated(self) -> frozenset[int]:
        return frozenset(self._invalidated)

    # --- batching ---

    def begin_batch(self) -> None:
        """Enter a batching scope. Nested batches are supported."""
        self._batch_depth += 1

    def end_batch(self) -> None:
        """Exit a batching scope. The outermost exit flushes."""
        self._batch_depth -= 1
        if self._batch_depth == 0:
            self.flush()

    # --- collecting ---

    def invalidate(self, source: int) -> None:
        """Mark everything downstream of source and queue affected observers."""
        a = self._anchor
        if self.state is State.IDLE:
            self.state = State.COLLECTING

        seen: set[int] = set()
        stack = list(a.dependents[source])
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            if a.kinds[node] == _anchor.DERIVATION:
                a.stale[node] = True
                stack.extend(a.dependents[node])
            elif not a.disposed[node]:
                self._pending.add(node)
        self._invalidated |= seen
        self._requeue_writers(seen | {source})

        if self._batch_depth == 0:
            self.flush()

    def _requeue_writers(self, changed: set[int]) -> None:
        # An observer that already read something it (indirectly) just wrote
        # is not linked to it until its run ends; queue it for another round.
        a = self._anchor
        ctx = current_tracking()
        while ctx is not None:
            owner = ctx.owner
            if (
                ctx.anchor is a
                and a.kinds[owner] == _anchor.OBSERVER
                and not a.disposed[owner]
                and not ctx.reads.isdisjoint(changed)
            ):
                self._pending.add(owner)
            ctx = ctx.parent

    def enqueue(self, observer_id: int) -> None:
        """Queue an observer's first run."""
        if self.state is State.IDLE:
            self.state = State.COLLECTING
        self._pending.add(observer_id)
        if self._batch_depth == 0:
            self.flush()

    # --- flushing ---

    def flush(self) -> None:
        """Run queued observers until no new writes arrive.

        Called re-entrantly (an observer writing a signal) this is a no-op;
        the running flush picks the new work up in its next round. If an
        observer raises a ReactiveError other than EvaluationFailure, the
        error reaches the writer and the observers behind it stay queued for
        the next flush.
        """
        if self.state is State.FLUSHING:
            return
        self.state = State.FLUSHING
        rounds = 0
        try:
            while self._pending:
                if rounds == self.max_rounds:
                    names = [self._anchor.names[i] for i in sorted(self._pending)]
                    self._pending.clear()
                    raise CyclicUpdate(rounds, names)
                rounds += 1
                # Declaration order; ids are monotonic.
                batch = sorted(self._pending)
                self._pending.clear()
                logger.debug("Flush round %d: %d observer(s)", rounds, len(batch))
                for index, observer_id in enumerate(batch):
                    try:
                        self._run(observer_id)
                    except ReactiveError:
                        self._pending.update(batch[index + 1:])
                        raise
        finally:
            self._invalidated.clear()
            self.state = State.COLLECTING if self._pending else State.IDLE

    def _run(self, observer_id: int) -> None:
        observer = Observer(self._anchor, observer_id)
        try:
            observer._run()
        except EvaluationFailure as failure:
            self.error_sink(observer, failure)
