"""Blocking front end for socketio.AsyncClient

The async client lives on one event-loop thread owned by the wrapper. Engine.IO
starts one task per inbound packet on that loop in arrival order, and a plain
(non-coroutine) handler runs before its task first yields, so handlers see
frames in the order the socket received them.

The loop thread is shut down when the connection attempt fails, when
disconnect() is called, or when the server drops the connection.
"""
import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Callable, Optional

import socketio

logger = logging.getLogger(__name__)

SHUTDOWN_GRACE = 1.0


class LoopSocketClient:
    def __init__(self, name: str = "simplechat-socket", request_timeout: float = 10, **client_kwargs):
        self.name = name
        self.request_timeout = request_timeout
        self._client_kwargs = dict(client_kwargs, request_timeout=request_timeout)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._sio: Optional[socketio.AsyncClient] = None
        self._disconnect_handler: Optional[Callable[..., Any]] = None
        self._closing = False
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run_loop, name=name, daemon=True)
        self._thread.start()
        self._ready.wait()

    def _run_loop(self) -> None:
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            self._sio = socketio.AsyncClient(**self._client_kwargs)
            self._sio.on('disconnect', self._handle_disconnect)
        finally:
            self._ready.set()
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()
            logger.debug(f"Socket loop {self.name} closed")

    def _on_loop_thread(self) -> bool:
        return threading.current_thread() is self._thread

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        """Register a plain function handler; it runs on the loop thread."""
        if event == 'disconnect':
            self._disconnect_handler = handler
        else:
            self._sio.on(event, handler)

    def _handle_disconnect(self, *args) -> None:
        try:
            if self._disconnect_handler is not None:
                self._disconnect_handler(*args)
        finally:
            self._schedule_shutdown()

    def start_background_task(self, target: Callable[..., Any], *args, **kwargs) -> threading.Thread:
        """Run a blocking callable on its own thread, off the loop."""
        thread = threading.Thread(target=target, args=args, kwargs=kwargs, daemon=True)
        thread.start()
        return thread

    def _call(self, coro, timeout: Optional[float] = None):
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise socketio.exceptions.TimeoutError()

    def connect(self, url: str, **kwargs) -> None:
        """Block until the handshake completes. The loop shuts down if it fails."""
        try:
            self._call(self._sio.connect(url, **kwargs))
        except BaseException:
            self.close()
            raise

    def send(self, data: Any) -> None:
        """
        Queue one message on the loop without waiting for it to be written.
        Messages queued from any thread keep their call order.
        Raises:
            BadNamespaceError: if the client is not connected
        """
        if self._closing or '/' not in self._sio.namespaces:
            raise socketio.exceptions.BadNamespaceError('/ is not a connected namespace.')
        if self._on_loop_thread():
            future = self._loop.create_task(self._sio.send(data))
        else:
            future = asyncio.run_coroutine_threadsafe(self._sio.send(data), self._loop)
        future.add_done_callback(self._log_send_failure)

    @staticmethod
    def _log_send_failure(future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Queued send failed: {error}")

    def disconnect(self) -> None:
        if self._closing:
            return
        if self._on_loop_thread():
            self._loop.create_task(self._sio.disconnect())
            self._schedule_shutdown()
            return
        try:
            self._call(self._sio.disconnect(), timeout=self.request_timeout)
        finally:
            self.close()

    def close(self) -> None:
        """Stop the loop thread. Waits for it unless called from the loop itself."""
        if not self._schedule_shutdown() or self._on_loop_thread():
            return
        self._thread.join(SHUTDOWN_GRACE * 2)

    def _schedule_shutdown(self) -> bool:
        with self._lock:
            if self._closing:
                return False
            self._closing = True
        if self._on_loop_thread():
            self._loop.create_task(self._shutdown())
        else:
            asyncio.run_coroutine_threadsafe(self._shutdown(), self._loop)
        return True

    async def _shutdown(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in asyncio.all_tasks() if task is not current]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=SHUTDOWN_GRACE)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        self._loop.stop()
