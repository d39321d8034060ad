"""Dependency tracking — records what a derivation or observer reads.

Each evaluation runs inside a TrackingContext. Contexts form a stack through
a ContextVar: begin_tracking() pushes, end_tracking() pops via the reset
token, so nested evaluations (a derivation read from inside an observer)
each collect their own reads. There is no engine-wide "currently running"
flag; a context only records reads of nodes owned by its own anchor, which
keeps separate engines from seeing each other's reads.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from rxgraph._anchor import Anchor

_active: contextvars.ContextVar[TrackingContext | None] = contextvars.ContextVar(
    "rxgraph_tracking", default=None
)


class TrackingContext:
    """One frame of the tracking stack."""

    __slots__ = ("anchor", "owner", "parent", "reads", "_token")

    def __init__(self, anchor: Anchor, owner: int, parent: TrackingContext | None) -> None:
        self.anchor = anchor
        self.owner = owner
        self.parent = parent
        self.reads: set[int] = set()
        self._token: contextvars.Token | None = None

    @property
    def depth(self) -> int:
        depth, frame = 1, self.parent
        while frame is not None:
            depth += 1
            frame = frame.parent
        return depth

    def __repr__(self) -> str:
        return f"TrackingContext({self.anchor.names[self.owner]}, reads={len(self.reads)})"


def begin_tracking(anchor: Anchor, owner: int) -> TrackingContext:
    """Push a new empty dependency frame for owner and return it."""
    ctx = TrackingContext(anchor, owner, _active.get())
    ctx._token = _active.set(ctx)
    return ctx


def end_tracking(ctx: TrackingContext) -> frozenset[int]:
    """Pop ctx and return the ids it recorded."""
    if ctx._token is None:
        raise RuntimeError(f"{ctx!r} is not active")
    _active.reset(ctx._token)
    ctx._token = None
    return frozenset(ctx.reads)


@contextmanager
def tracking(anchor: Anchor, owner: int) -> Iterator[TrackingContext]:
    """Scoped begin/end pair; the frame is popped on every exit path."""
    ctx = begin_tracking(anchor, owner)
    try:
        yield ctx
    finally:
        end_tracking(ctx)


def record_read(anchor: Anchor, node_id: int) -> None:
    """Register node_id in the innermost frame, if that frame is tracking anchor."""
    ctx = _active.get()
    if ctx is not None and ctx.anchor is anchor:
        ctx.reads.add(node_id)


def current_tracking() -> TrackingContext | None:
    return _active.get()


@contextmanager
def isolate() -> Iterator[None]:
    """Read signals and derivations without registering dependencies.

    Usage:
        @engine.declare_observer
        def render():
            species = species_input.get()      # tracked
            with isolate():
                year = year_input.get()        # not tracked
    """
    token = _active.set(None)
    try:
        yield
    finally:
        _active.reset(token)
