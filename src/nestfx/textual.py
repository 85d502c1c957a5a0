"""Textual integration for nestfx. Opt-in — requires textual.

bind() is a host for one container subscriber: it renders through a tracked
pass, and renders again whenever a key read in the last pass changes.
Guard, NoMatches handling and thread marshaling all live here so render
functions stay plain.
"""

import logging
import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from nestfx.container import ContainerInstance

logger = logging.getLogger("nestfx.textual")

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound renders during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def bind(app, instance: ContainerInstance, render_fn):
    """Render render_fn(view) now, and again when anything it read changes.

    Skips renders while the app is paused or not running, swallows NoMatches
    from widget queries, and marshals cross-thread signals via
    call_from_thread. Returns the Subscription; call it to unbind.

    Usage:
        def draw(view):
            app.query_one("#count", Label).update(str(view["count"]))

        unbind = bind(app, counter, draw)
    """
    _main = threading.get_ident()

    def _render():
        try:
            with sub.render() as view:
                render_fn(view)
        except NoMatches:
            logger.debug("Render of %r skipped: widget not mounted", instance)

    def _guarded(changed):
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_render)
        else:
            _render()

    sub = instance.subscribe(_guarded)
    _render()
    return sub
