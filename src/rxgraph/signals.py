"""Signals — externally written values that track their readers.

Reading a Signal inside a derivation or observer registers the dependency.
Every write counts as a change, even when the new value equals the old one:
the revision goes up and everything downstream is invalidated.

Thread safety: call Engine.set_marshal() once from the owning thread. After
that, any write from another thread is handed to the marshal instead of
touching the graph directly.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Generic, Iterator, TypeVar

from rxgraph import _anchor
from rxgraph._tracking import record_read
from rxgraph.errors import UnknownSignal

if TYPE_CHECKING:
    from rxgraph._anchor import Anchor
    from rxgraph.scheduler import Scheduler

T = TypeVar("T")


class Signal(Generic[T]):
    """Handle to one declared signal."""

    __slots__ = ("_store", "_id")

    def __init__(self, store: SignalStore, node_id: int) -> None:
        self._store = store
        self._id = node_id

    @property
    def key(self) -> str:
        return self._store._anchor.names[self._id]

    @property
    def revision(self) -> int:
        """Number of writes since declaration."""
        return self._store._anchor.revisions[self._id]

    def get(self) -> T:
        """Read the value. If inside a tracked evaluation, registers the dependency."""
        return self._store.read(self)

    def set(self, value: T) -> None:
        self._store.write(self, value)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Signal) and other._store is self._store and other._id == self._id

    def __hash__(self) -> int:
        return hash((id(self._store), self._id))

    def __repr__(self) -> str:
        return f"Signal({self.key}={self._store._anchor.values[self._id]!r})"


class SignalStore:
    """Keyed signal values for one engine."""

    def __init__(self, anchor: Anchor, scheduler: Scheduler) -> None:
        self._anchor = anchor
        self._scheduler = scheduler
        self._keys: dict[str, int] = {}
        self._marshal: Callable[[Callable[[], None]], object] | None = None
        self._marshal_thread: threading.Thread | None = None

    def declare(self, key: str, initial_value: T) -> Signal[T]:
        if key in self._keys:
            raise ValueError(f"signal {key!r} is already declared")
        node_id = self._anchor.new_node(_anchor.SIGNAL, key)
        self._anchor.values[node_id] = initial_value
        self._keys[key] = node_id
        return Signal(self, node_id)

    def lookup(self, key: str) -> Signal:
        try:
            return Signal(self, self._keys[key])
        except KeyError:
            raise UnknownSignal(key) from None

    def read(self, handle: Signal | str) -> object:
        node_id = self._resolve(handle)
        record_read(self._anchor, node_id)
        return self._anchor.values[node_id]

    def write(self, handle: Signal | str, value: object) -> None:
        """Store value and invalidate dependents. Auto-marshals from other threads."""
        node_id = self._resolve(handle)
        if self._marshal is not None and threading.current_thread() is not self._marshal_thread:
            self._marshal(lambda: self._write_direct(node_id, value))
        else:
            self._write_direct(node_id, value)

    def set_marshal(self, marshal: Callable[[Callable[[], None]], object] | None) -> None:
        self._marshal = marshal
        self._marshal_thread = threading.current_thread() if marshal is not None else None

    def _write_direct(self, node_id: int, value: object) -> None:
        a = self._anchor
        a.values[node_id] = value
        a.revisions[node_id] += 1
        a.changed_at[node_id] = a.tick()
        self._scheduler.invalidate(node_id)

    def _resolve(self, handle: Signal | str) -> int:
        if isinstance(handle, Signal):
            if handle._store is not self:
                raise UnknownSignal(handle.key)
            return handle._id
        try:
            return self._keys[handle]
        except (KeyError, TypeError):
            raise UnknownSignal(handle) from None

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)
