"""Actions and batches — grouped signal writes.

Writes inside an action or `with batch(...)` only collect invalidations;
observers run once, when the outermost scope exits. This is the "one flush
per external event" boundary: a UI layer wraps each user interaction in a
batch so that observers never see half of an update.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterator, ParamSpec, TypeVar

if TYPE_CHECKING:
    from rxgraph.scheduler import Scheduler

P = ParamSpec("P")
R = TypeVar("R")


@contextmanager
def batch(scheduler: Scheduler) -> Iterator[None]:
    """Context manager for batching writes.

    Usage:
        with engine.batch():
            species.set("PP")
            year.set(1990)
            # observers run here, after both are set
    """
    scheduler.begin_batch()
    try:
        yield
    finally:
        scheduler.end_batch()


def action(scheduler: Scheduler, fn: Callable[P, R]) -> Callable[P, R]:
    """Wrap fn so all writes inside it land in a single flush.

    Usage:
        @engine.action
        def reset_filters():
            species.set("DO")
            year.set(1977)
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with batch(scheduler):
            return fn(*args, **kwargs)

    return wrapper
