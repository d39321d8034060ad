"""Error kinds raised by the reactive engine."""

from __future__ import annotations


class ReactiveError(Exception):
    """Base class for every error the engine raises itself."""


class UnknownSignal(ReactiveError, KeyError):
    """Read or write on a key or handle this engine never declared."""

    def __init__(self, key: object) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"unknown signal: {self.key!r}"


class CyclicUpdate(ReactiveError):
    """Observers kept writing their own inputs past the flush round limit."""

    def __init__(self, rounds: int, observers: list[str]) -> None:
        super().__init__(rounds, observers)
        self.rounds = rounds
        self.observers = observers

    def __str__(self) -> str:
        names = ", ".join(self.observers)
        return f"flush did not settle after {self.rounds} rounds (still queued: {names})"


class CyclicDependency(ReactiveError):
    """A derivation read itself while it was being evaluated."""

    def __init__(self, node: str) -> None:
        super().__init__(node)
        self.node = node

    def __str__(self) -> str:
        return f"derivation {self.node!r} depends on itself"


class EvaluationFailure(ReactiveError):
    """A derivation or observer function raised. The original error is __cause__."""

    def __init__(self, node: str) -> None:
        super().__init__(node)
        self.node = node

    def __str__(self) -> str:
        cause = self.__cause__
        if cause is None:
            return f"{self.node} failed"
        return f"{self.node} failed: {cause!r}"
