"""Engine — the public surface of one reactive session.

An Engine owns its graph outright: the data anchor, the signal store and the
scheduler. Two engines never share nodes, and closing one (end of session)
disposes every observer it registered.

Usage:
    engine = Engine()
    species = engine.declare("species", "DO")

    @engine.declare_derivation
    def subset():
        return [row for row in SURVEYS if row["species_id"] == species.get()]

    @engine.declare_observer
    def render_count():
        sink.append(len(subset.get()))

    species.set("PP")   # render_count re-runs once, subset recomputes once
"""

from __future__ import annotations

from typing import Callable, TypeVar, overload

from rxgraph import _anchor
from rxgraph._tracking import isolate
from rxgraph.action import action, batch
from rxgraph.derivation import Derivation
from rxgraph.errors import EvaluationFailure
from rxgraph.observer import Observer
from rxgraph.scheduler import DEFAULT_MAX_FLUSH_ROUNDS, Scheduler, State
from rxgraph.signals import Signal, SignalStore

T = TypeVar("T")
R = TypeVar("R")


class Engine:
    """Declare signals, derivations and observers; write signals; let flushes run."""

    def __init__(
        self,
        *,
        max_flush_rounds: int = DEFAULT_MAX_FLUSH_ROUNDS,
        error_sink: Callable[[Observer, EvaluationFailure], None] | None = None,
    ) -> None:
        self._anchor = _anchor.Anchor()
        self._scheduler = Scheduler(
            self._anchor, max_rounds=max_flush_rounds, error_sink=error_sink
        )
        self._signals = SignalStore(self._anchor, self._scheduler)
        self._observers: list[Observer] = []
        self._closed = False

    # --- signals ---

    def declare(self, key: str, initial_value: T) -> Signal[T]:
        self._check_open()
        return self._signals.declare(key, initial_value)

    def lookup(self, key: str) -> Signal:
        return self._signals.lookup(key)

    def read(self, handle: Signal | str) -> object:
        return self._signals.read(handle)

    def write(self, handle: Signal | str, value: object) -> None:
        self._signals.write(handle, value)

    @property
    def signals(self) -> SignalStore:
        return self._signals

    # --- derivations ---

    @overload
    def declare_derivation(self, fn: Callable[[], T], *, name: str | None = None) -> Derivation[T]: ...

    @overload
    def declare_derivation(
        self, fn: None = None, *, name: str | None = None
    ) -> Callable[[Callable[[], T]], Derivation[T]]: ...

    def declare_derivation(self, fn=None, *, name=None):
        """Declare a cached derivation. Works as a plain call or a decorator."""
        if fn is None:
            return lambda f: self.declare_derivation(f, name=name)
        self._check_open()
        a = self._anchor
        node_id = a.new_node(_anchor.DERIVATION, name or _name_of(fn))
        a.fns[node_id] = fn
        a.values[node_id] = _anchor.UNSET
        a.cached_at[node_id] = 0
        a.stale[node_id] = True
        return Derivation(a, node_id)

    def get(self, handle: Derivation[T]) -> T:
        if not isinstance(handle, Derivation) or handle._anchor is not self._anchor:
            raise ValueError(f"{handle!r} is not a derivation of this engine")
        return handle.get()

    # --- observers ---

    @overload
    def declare_observer(self, fn: Callable[[], object], *, name: str | None = None) -> Observer: ...

    @overload
    def declare_observer(
        self, fn: None = None, *, name: str | None = None
    ) -> Callable[[Callable[[], object]], Observer]: ...

    def declare_observer(self, fn=None, *, name=None):
        """Declare an observer and queue its first run.

        Outside a batch the first run happens before this returns; inside one,
        when the batch closes.
        """
        if fn is None:
            return lambda f: self.declare_observer(f, name=name)
        self._check_open()
        a = self._anchor
        node_id = a.new_node(_anchor.OBSERVER, name or _name_of(fn))
        a.fns[node_id] = fn
        observer = Observer(a, node_id)
        self._observers.append(observer)
        self._scheduler.enqueue(node_id)
        return observer

    def observe_event(
        self,
        trigger: Callable[[], T],
        handler: Callable[[T], object],
        *,
        ignore_init: bool = True,
        name: str | None = None,
    ) -> Observer:
        """Run handler(trigger()) whenever trigger's dependencies change.

        Only what trigger reads is tracked; handler runs isolated, so the
        signals it reads do not re-fire it.

        Usage:
            engine.observe_event(
                lambda: engine.read("refresh_clicks"),
                lambda _: redraw(engine.read("species")),
            )
        """
        skip = ignore_init

        def run() -> None:
            nonlocal skip
            value = trigger()
            if skip:
                skip = False
                return
            with isolate():
                handler(value)

        return self.declare_observer(run, name=name or _name_of(handler))

    # --- batching ---

    def batch(self):
        """Context manager: one flush for every write inside it."""
        return batch(self._scheduler)

    def action(self, fn: Callable[..., R]) -> Callable[..., R]:
        """Decorator: batch all writes made by fn."""
        return action(self._scheduler, fn)

    def flush(self) -> None:
        """Run observers still queued, e.g. those left behind by an error."""
        self._scheduler.flush()

    def isolate(self, fn: Callable[[], R]) -> R:
        """Call fn without registering anything it reads."""
        with isolate():
            return fn()

    # --- session ---

    def set_marshal(self, marshal: Callable[[Callable[[], None]], object] | None) -> None:
        """Route writes from other threads through marshal.

        Call once from the thread that owns the engine:
            engine.set_marshal(app.call_from_thread)
        """
        self._signals.set_marshal(marshal)

    @property
    def state(self) -> State:
        return self._scheduler.state

    @property
    def pending_count(self) -> int:
        """Observers waiting to run. Useful for testing."""
        return self._scheduler.pending_count

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """End the session: dispose every observer."""
        for observer in self._observers:
            observer.dispose()
        self._observers.clear()
        self._closed = True

    def __enter__(self) -> Engine:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("engine is closed")

    def __repr__(self) -> str:
        return (
            f"Engine(signals={len(self._signals)}, observers={len(self._observers)}, "
            f"state={self.state.value})"
        )


def _name_of(fn: Callable) -> str | None:
    name = getattr(fn, "__name__", None)
    return None if name == "<lambda>" else name
