"""Single-slot background thread with cooperative cancellation."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)


class BackgroundWorker:
    """Run ``target(cancel_event)`` on a daemon thread, at most one at a time.

    Cancellation is cooperative: :meth:`cancel` sets the event handed to the
    target and joins the thread. The target is expected to check the event
    between units of work.
    """

    def __init__(self, target: Callable[[threading.Event], None], name: Optional[str] = None) -> None:
        self._target = target
        self._name = name
        self._guard = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._cancel_event = threading.Event()

    @property
    def is_busy(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> bool:
        """Spawn the target unless one is already running. Returns True when spawned."""
        with self._guard:
            if self.is_busy:
                return False
            self._cancel_event = threading.Event()
            self._thread = threading.Thread(
                target=self._target,
                args=(self._cancel_event,),
                name=self._name,
                daemon=True,
            )
            self._thread.start()
            return True

    def cancel(self, timeout: Optional[float] = None) -> bool:
        """Request cancellation and wait for the thread. Returns True once it has exited."""
        with self._guard:
            thread = self._thread
            self._cancel_event.set()
        if thread is None:
            return True
        if thread is threading.current_thread():
            return False
        thread.join(timeout)
        if thread.is_alive():
            LOGGER.warning("Background worker %s did not stop within %.1fs", thread.name, timeout or 0.0)
            return False
        return True


__all__ = ["BackgroundWorker"]
