"""rxgraph: a reactive computation graph for interactive dashboards."""

from importlib.metadata import version as _version

__version__ = _version("rxgraph")

from rxgraph._tracking import current_tracking, isolate
from rxgraph.errors import (
    CyclicDependency,
    CyclicUpdate,
    EvaluationFailure,
    ReactiveError,
    UnknownSignal,
)
from rxgraph.signals import Signal, SignalStore
from rxgraph.derivation import Derivation
from rxgraph.observer import Observer
from rxgraph.scheduler import DEFAULT_MAX_FLUSH_ROUNDS, Scheduler, State
from rxgraph.engine import Engine
from rxgraph.store import Store
# textual NOT auto-imported — opt-in only

__all__ = [
    "Engine",
    "Signal",
    "SignalStore",
    "Derivation",
    "Observer",
    "Scheduler",
    "State",
    "DEFAULT_MAX_FLUSH_ROUNDS",
    "Store",
    "isolate",
    "current_tracking",
    "ReactiveError",
    "UnknownSignal",
    "CyclicUpdate",
    "CyclicDependency",
    "EvaluationFailure",
]
