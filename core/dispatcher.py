"""Serialized delivery of transport notifications.

Socket events arrive on background threads. Listener callbacks are handed to a
dispatcher, which runs them one at a time in arrival order on the
application's delivery context.
"""
import logging
import queue
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_STOP = object()


class ImmediateDispatcher:
    """Runs callbacks inline on the calling thread."""

    def dispatch(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Listener callback {getattr(callback, '__name__', callback)} failed: {e}", exc_info=True)

    def flush(self, timeout: Optional[float] = None) -> bool:
        return True

    def stop(self) -> None:
        pass


class SerialDispatcher:
    """Thread-safe FIFO dispatcher backed by a single worker thread."""

    def __init__(self, name: str = "simplechat-dispatch"):
        self.name = name
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.RLock()

    def _ensure_started(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
                self._thread.start()

    def dispatch(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue `callback(*args)` behind every previously dispatched call."""
        self._ensure_started()
        self._queue.put((callback, args))

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                callback, args = item
                callback(*args)
            except Exception as e:
                logger.error(f"Listener callback failed: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued callback has run.
        Must not be called from inside a callback.
        Returns:
            bool: False if the timeout expired first
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the worker after the callbacks already queued."""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None or not thread.is_alive():
            return
        self._queue.put(_STOP)
        if thread is not threading.current_thread():
            thread.join(timeout)
