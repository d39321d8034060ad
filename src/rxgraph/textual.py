"""Textual integration for rxgraph. Opt-in — requires textual.

Observers that write into widgets need three guards: skip while the widget
tree is being rebuilt or the app is not running, ignore NoMatches from
queries against widgets that are gone, and land on the app's thread.
All three are enforced here so callsites stay plain.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

# Keyed by id(app) so several apps can coexist in tests.
_paused_apps: set[int] = set()


def attach(app, engine) -> None:
    """Marshal writes from worker threads onto the app's thread."""
    engine.set_marshal(app.call_from_thread)


@contextmanager
def pause(app):
    """Suspend guarded observers during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _ignore_nomatch(effect):
    def _safe(*args):
        try:
            effect(*args)
        except NoMatches:
            pass

    return _safe


def _guard(app, effect):
    main = threading.get_ident()
    safe = _ignore_nomatch(effect)

    def _guarded(*args):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(safe, *args)
        else:
            safe(*args)

    return _guarded


def observer(app, engine, fn, *, name=None):
    """declare_observer() that safely writes into Textual widgets.

    While the app is paused or not running, fn is skipped but its previous
    dependencies are kept, so it catches up on the next change. Errors other
    than NoMatches go to the engine's error sink like any observer failure.

    fn always runs inside the observer's own run, on whichever thread is
    flushing, so that its reads are tracked. Use attach() to keep flushes on
    the app's thread.
    """
    safe = _ignore_nomatch(fn)
    handle = []

    def run():
        if is_safe(app):
            safe()
        elif handle:
            handle[0].keep_dependencies()

    handle.append(engine.declare_observer(run, name=name or getattr(fn, "__name__", None)))
    return handle[0]


def observe_event(app, engine, trigger, handler, *, ignore_init=True, name=None):
    """observe_event() whose handler safely writes into Textual widgets.

    The handler runs isolated, so it can be handed to call_from_thread when
    the flush happens off the app thread without losing any tracking.
    """
    return engine.observe_event(
        trigger,
        _guard(app, handler),
        ignore_init=ignore_init,
        name=name or getattr(handler, "__name__", None),
    )
