"""Store — keyed input signals with observer lifecycle.

A Store is what a UI layer holds on to: one signal per input widget, plus
the observers it registered for its outputs. reconcile() supports layout
changes: add new inputs and re-register outputs without losing the values
the user already entered.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Iterable

if TYPE_CHECKING:
    from rxgraph.engine import Engine
    from rxgraph.observer import Observer
    from rxgraph.signals import Signal

logger = logging.getLogger("rxgraph.store")


class Store:
    """Key-based signal container with observer lifecycle."""

    def __init__(self, engine: Engine, schema: dict[str, object], initial: dict | None = None) -> None:
        self._engine = engine
        self._keys: list[str] = []
        self._observers: list[Observer] = []
        for key, default in schema.items():
            value = initial.get(key, default) if initial else default
            self._add(key, value)

    @property
    def keys(self) -> list[str]:
        return list(self._keys)

    def signal(self, key: str) -> Signal:
        return self._engine.lookup(key)

    def get(self, key: str) -> object:
        return self._engine.read(key)

    def set(self, key: str, value: object) -> None:
        self._engine.write(key, value)

    def update(self, values: dict) -> None:
        """Write several inputs as one user event: observers run once."""
        with self._engine.batch():
            for key, value in values.items():
                self.set(key, value)

    def reconcile(self, schema: dict[str, object], setup_fn: Callable[[Store], Iterable[Observer] | None]) -> None:
        """Add new keys, re-register observers.

        Existing values are untouched. New keys get their defaults. Old
        observers are disposed; setup_fn(store) returns the new ones.
        """
        new_keys = [key for key in schema if key not in self._keys]
        for key in new_keys:
            self._add(key, schema[key])

        old_count = len(self._observers)
        self._dispose_observers()
        self._observers = list(setup_fn(self) or [])
        logger.info(
            "Reconciled: %d new keys, %d->%d observers",
            len(new_keys), old_count, len(self._observers),
        )

    def dispose(self) -> None:
        self._dispose_observers()

    def _add(self, key: str, value: object) -> None:
        self._engine.declare(key, value)
        self._keys.append(key)

    def _dispose_observers(self) -> None:
        for observer in self._observers:
            observer.dispose()
        self._observers.clear()

    def __repr__(self) -> str:
        return f"Store({', '.join(self._keys)})"
