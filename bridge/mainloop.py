"""Execution contexts: the UI-affinity main loop and short-lived background work.

All mutation of state the OS surfaces can observe (now-playing snapshot,
template contents, auth state, button visibility) happens on the thread that
runs the GLib main loop. Work arriving from any other thread is resequenced
there with ``GLib.idle_add``.
"""

import threading
from typing import Any, Callable

from gi.repository import GLib

from bridge.logging import get_logger

logger = get_logger(__name__)


class MainContext:
    """The single UI-affinity context, bound to the thread that creates it."""

    def __init__(self):
        self._thread = threading.current_thread()

    def is_main_thread(self) -> bool:
        return threading.current_thread() is self._thread

    def _wrap(self, fn: Callable[..., Any], args: tuple) -> Callable[[], bool]:
        def run():
            try:
                fn(*args)
            except Exception as e:
                logger.error("Error in main-loop callback %s: %s",
                             getattr(fn, '__name__', fn), e, exc_info=True)
            return GLib.SOURCE_REMOVE
        return run

    def call_soon(self, fn: Callable[..., Any], *args) -> None:
        """Queue ``fn`` on the main loop; safe from any thread."""
        GLib.idle_add(self._wrap(fn, args))

    def call_later(self, delay: float, fn: Callable[..., Any], *args) -> None:
        """Run ``fn`` on the main loop after ``delay`` seconds."""
        GLib.timeout_add(max(0, int(delay * 1000)), self._wrap(fn, args))

    def invoke(self, fn: Callable[..., Any], *args) -> None:
        """Run ``fn`` now when already on the main thread, otherwise queue it."""
        if self.is_main_thread():
            fn(*args)
        else:
            self.call_soon(fn, *args)

    def run_sync(self, fn: Callable[[], Any]) -> Any:
        """Run ``fn`` on the main loop and block the calling thread for its result.

        Never call this while holding a lock the main loop needs.
        """
        if self.is_main_thread():
            return fn()

        done = threading.Event()
        outcome = {}

        def run():
            try:
                outcome['value'] = fn()
            except Exception as e:
                outcome['error'] = e
            finally:
                done.set()
            return GLib.SOURCE_REMOVE

        GLib.idle_add(run)
        done.wait()
        if 'error' in outcome:
            raise outcome['error']
        return outcome.get('value')


class BackgroundRunner:
    """Fire-and-forget daemon threads for network and probe work."""

    def run(self, fn: Callable[..., Any], *args) -> None:
        thread = threading.Thread(target=fn, args=args, daemon=True)
        thread.start()
