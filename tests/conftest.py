"""Test configuration and fixtures for the SimpleChat tests."""
import asyncio
import os
import socket
import sys
import threading
import time

import pytest
import pytest_asyncio
import socketio
from aiohttp import web

# Add application root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chat_socket.echo_server import create_echo_server, start_echo_server
from chat_socket.manager import TransportListener, TransportManager
from core.dispatcher import ImmediateDispatcher


def _wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll `predicate` until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class RecordingListener(TransportListener):
    """Listener that records every notification it receives."""

    def __init__(self):
        self.contents = []
        self.errors = []
        self.threads = set()
        self._cond = threading.Condition()

    def on_content_received(self, content):
        with self._cond:
            self.threads.add(threading.current_thread().name)
            self.contents.append(content)
            self._cond.notify_all()

    def on_error(self, message):
        with self._cond:
            self.threads.add(threading.current_thread().name)
            self.errors.append(message)
            self._cond.notify_all()

    def wait_for_contents(self, count, timeout=5.0):
        with self._cond:
            return self._cond.wait_for(lambda: len(self.contents) >= count, timeout)

    def wait_for_errors(self, count, timeout=5.0):
        with self._cond:
            return self._cond.wait_for(lambda: len(self.errors) >= count, timeout)


class FakeSocketClient:
    """Stand-in for the socket client that runs everything synchronously."""

    def __init__(self, connect_timeout, fail_with=None, defer_handshake=False):
        self.connect_timeout = connect_timeout
        self.fail_with = fail_with
        self.defer_handshake = defer_handshake
        self.pending_task = None
        self.handlers = {}
        self.sent = []
        self.connect_calls = []
        self.disconnect_calls = 0
        self.connected = False

    def on(self, event, handler=None):
        self.handlers[event] = handler

    def start_background_task(self, target, *args, **kwargs):
        if self.defer_handshake:
            self.pending_task = (target, args, kwargs)
            return
        target(*args, **kwargs)

    def run_pending(self):
        """Finish a deferred handshake."""
        target, args, kwargs = self.pending_task
        self.pending_task = None
        target(*args, **kwargs)

    def connect(self, url, **kwargs):
        self.connect_calls.append((url, kwargs))
        if self.fail_with is not None:
            raise self.fail_with
        self.connected = True
        self.trigger('connect')

    def disconnect(self):
        self.disconnect_calls += 1
        was_connected = self.connected
        self.connected = False
        if was_connected:
            self.trigger('disconnect', 'client disconnect')

    def send(self, data):
        if not self.connected:
            raise socketio.exceptions.BadNamespaceError('/ is not a connected namespace.')
        self.sent.append(data)

    def trigger(self, event, *args):
        handler = self.handlers.get(event)
        if handler is not None:
            handler(*args)

    def receive(self, frame):
        """Simulate an inbound frame."""
        self.trigger('message', frame)

    def drop(self, reason='transport close'):
        """Simulate an abrupt close from the remote side."""
        self.connected = False
        self.trigger('disconnect', reason)


class FakeClientFactory:
    def __init__(self):
        self.clients = []
        self.fail_next = None
        self.defer_handshake = False

    def __call__(self, connect_timeout):
        client = FakeSocketClient(connect_timeout, fail_with=self.fail_next,
                                  defer_handshake=self.defer_handshake)
        self.fail_next = None
        self.clients.append(client)
        return client

    @property
    def last(self):
        return self.clients[-1]


class EchoServerThread(threading.Thread):
    """Runs the echo server on its own event loop for synchronous clients."""

    def __init__(self, mode="echo"):
        super().__init__(name="echo-server", daemon=True)
        self.mode = mode
        self.ready = threading.Event()
        self.loop = None
        self.runner = None
        self.port = None
        self.error = None

    def run(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        try:
            self.runner = self.loop.run_until_complete(start_echo_server("127.0.0.1", 0, self.mode))
            self.port = self.runner.addresses[0][1]
        except Exception as e:
            self.error = e
            self.ready.set()
            return
        self.ready.set()
        self.loop.run_forever()
        self.loop.run_until_complete(self.runner.cleanup())
        self.loop.close()

    @property
    def url(self):
        return f"http://127.0.0.1:{self.port}"

    def stop(self):
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.loop.stop)
        self.join(5)


@pytest.fixture
def test_config():
    """Provide test configuration."""
    return {
        "transport": {
            "url": "http://127.0.0.1:5349",
            "connect_timeout": 2,
            "transports": ["websocket"],
        },
        "echo_server": {
            "host": "127.0.0.1",
            "port": 0,
            "mode": "echo"
        }
    }


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def make_listener():
    return RecordingListener


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def transport(listener, client_factory, test_config):
    """Transport manager over a fake socket, delivering inline."""
    return TransportManager(
        url=test_config['transport']['url'],
        listener=listener,
        dispatcher=ImmediateDispatcher(),
        connect_timeout=test_config['transport']['connect_timeout'],
        client_factory=client_factory,
    )


@pytest.fixture
def connected_transport(transport, client_factory):
    transport.connect()
    assert transport.is_connected
    return transport


@pytest.fixture
def echo_server():
    """Live echo server running in a background thread."""
    server = EchoServerThread()
    server.start()
    assert server.ready.wait(10), "Echo server did not start"
    if server.error is not None:
        raise server.error
    yield server
    server.stop()


@pytest.fixture
def unused_port():
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest_asyncio.fixture
async def server_app():
    """Provide a test echo server application on the current event loop."""
    runners = []

    async def start(mode="echo"):
        _, app = create_echo_server(mode)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()
        runners.append(runner)
        return f"http://127.0.0.1:{runner.addresses[0][1]}"

    try:
        yield start
    finally:
        for runner in runners:
            await runner.cleanup()


@pytest_asyncio.fixture
async def client_sio():
    """Provide test Socket.IO clients, disconnected on teardown."""
    clients = []

    def make():
        client = socketio.AsyncClient(logger=False, engineio_logger=False)
        clients.append(client)
        return client

    yield make
    for client in clients:
        if client.connected:
            await client.disconnect()
