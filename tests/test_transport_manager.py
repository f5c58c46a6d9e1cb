"""Tests for the TransportManager state machine over a fake socket."""
import gc
import json

import socketio

from chat_socket.manager import TransportManager
from core.content import Document, Image, ImageWithText, Text
from core.dispatcher import ImmediateDispatcher
from utils.event_utils import ConnectionState


def test_initial_state(transport):
    assert transport.state is ConnectionState.DISCONNECTED
    assert not transport.is_connected


def test_connect_reaches_connected(transport, client_factory, test_config):
    transport.connect()
    assert transport.state is ConnectionState.CONNECTED
    url, kwargs = client_factory.last.connect_calls[0]
    assert url == test_config['transport']['url']
    assert kwargs['wait_timeout'] == test_config['transport']['connect_timeout']
    assert kwargs['transports'] == ['websocket']


def test_default_connect_timeout_is_ten_seconds(client_factory):
    manager = TransportManager(url="http://example.invalid", client_factory=client_factory,
                               dispatcher=ImmediateDispatcher())
    assert manager.connect_timeout == 10


def test_explicit_connect_timeout_is_kept(client_factory):
    manager = TransportManager(url="http://example.invalid", client_factory=client_factory,
                               dispatcher=ImmediateDispatcher(), connect_timeout=0)
    assert manager.connect_timeout == 0


def test_connect_is_noop_while_connecting(transport, client_factory):
    client_factory.defer_handshake = True
    transport.connect()
    assert transport.state is ConnectionState.CONNECTING
    transport.connect()
    assert len(client_factory.clients) == 1


def test_connect_is_noop_while_connected(connected_transport, client_factory):
    connected_transport.connect()
    assert len(client_factory.clients) == 1
    assert connected_transport.is_connected


def test_connection_failure_reports_error(transport, client_factory, listener):
    client_factory.fail_next = socketio.exceptions.ConnectionError("Connection refused by the server")
    transport.connect()
    assert transport.state is ConnectionState.DISCONNECTED
    assert listener.errors == ["Connection failed: Connection refused by the server"]


def test_abrupt_disconnect_reports_once_and_reconnects(connected_transport, client_factory, listener):
    first = client_factory.last
    first.drop("transport close")
    assert connected_transport.state is ConnectionState.DISCONNECTED
    assert listener.errors == ["Disconnected: transport close"]

    connected_transport.connect()
    assert connected_transport.is_connected
    assert client_factory.last is not first
    assert len(listener.errors) == 1


def test_explicit_disconnect_reports_once(connected_transport, client_factory, listener):
    client = client_factory.last
    connected_transport.disconnect()
    assert connected_transport.state is ConnectionState.DISCONNECTED
    assert client.disconnect_calls == 1
    assert listener.errors == ["Disconnected: client disconnect"]


def test_disconnect_when_disconnected_is_safe(transport, listener):
    transport.disconnect()
    transport.disconnect()
    assert listener.errors == []


def test_disconnect_during_handshake_closes_late_socket(transport, client_factory, listener):
    client_factory.defer_handshake = True
    transport.connect()
    client = client_factory.last
    transport.disconnect()
    assert transport.state is ConnectionState.DISCONNECTED

    # The handshake completes after the handle was discarded
    client.run_pending()
    assert transport.state is ConnectionState.DISCONNECTED
    assert not client.connected
    assert listener.errors == ["Disconnected: client disconnect"]


def test_events_from_stale_client_are_ignored(connected_transport, client_factory, listener):
    stale = client_factory.last
    stale.drop()
    connected_transport.connect()
    stale.receive(json.dumps({"type": "text", "text": "ghost"}))
    stale.drop("server disconnect")
    assert listener.contents == []
    assert len(listener.errors) == 1
    assert connected_transport.is_connected


def test_send_order_is_preserved(connected_transport, client_factory):
    for body in ("a", "b", "c"):
        assert connected_transport.send(Text(body))
    sent = [json.loads(frame)["text"] for frame in client_factory.last.sent]
    assert sent == ["a", "b", "c"]


def test_send_each_content_kind_as_single_frame(connected_transport, client_factory):
    connected_transport.send(Image([b"1", b"2"]))
    connected_transport.send(ImageWithText("cap", [b"1"]))
    connected_transport.send(Document(b"doc", "a.txt", "text/plain"))
    types = [json.loads(frame)["type"] for frame in client_factory.last.sent]
    assert types == ["image", "image+text", "document"]


def test_send_text_and_images(connected_transport, client_factory):
    connected_transport.send_text_and_images("hello", [])
    connected_transport.send_text_and_images("", [b"img"])
    connected_transport.send_text_and_images("", [])
    frames = [json.loads(frame) for frame in client_factory.last.sent]
    assert [f["type"] for f in frames] == ["text", "image", "text"]
    assert frames[2]["text"] == ""


def test_send_while_disconnected_is_dropped(transport, listener):
    assert transport.send(Text("nobody home")) is False
    assert listener.errors == []


def test_send_unsupported_value_is_swallowed(connected_transport, client_factory, listener):
    assert connected_transport.send({"type": "text"}) is False
    assert client_factory.last.sent == []
    assert listener.errors == []


def test_socket_send_failure_reports_error(connected_transport, client_factory, listener):
    client_factory.last.connected = False
    assert connected_transport.send(Text("lost")) is False
    assert listener.errors == ["Send failed: / is not a connected namespace."]


def test_inbound_frames_are_delivered_in_order(connected_transport, client_factory, listener):
    client = client_factory.last
    client.receive(json.dumps({"type": "text", "text": "one"}))
    client.receive("two")
    client.receive(json.dumps({"type": "image", "images": ["aGk="]}))
    assert listener.contents == [Text("one"), Text("two"), Image([b"hi"])]


def test_malformed_frames_do_not_end_session(connected_transport, client_factory, listener):
    client = client_factory.last
    client.receive(json.dumps({"type": "unknown"}))
    client.receive(json.dumps({"type": "document", "fileName": "a", "data": "aGk="}))
    client.receive(b"\x00binary")
    client.receive(json.dumps({"type": "text", "text": "still here"}))
    assert listener.contents == [Text("still here")]
    assert listener.errors == []
    assert connected_transport.is_connected


def test_multi_image_frame_is_delivered_once(connected_transport, client_factory, listener):
    client_factory.last.receive(json.dumps({"type": "image+text", "text": "t", "images": ["YQ==", "Yg==", "Yw=="]}))
    assert listener.contents == [ImageWithText("t", [b"a", b"b", b"c"])]


def test_listener_is_not_kept_alive(client_factory, make_listener):
    listener = make_listener()
    manager = TransportManager(url="http://example.invalid", listener=listener,
                               dispatcher=ImmediateDispatcher(), client_factory=client_factory)
    assert manager.listener is listener
    del listener
    gc.collect()
    assert manager.listener is None
    manager.connect()
    client_factory.last.receive("nobody listening")
    client_factory.last.drop()
    assert manager.state is ConnectionState.DISCONNECTED


def test_set_listener_replaces_previous(connected_transport, client_factory, listener, make_listener):
    replacement = make_listener()
    connected_transport.set_listener(replacement)
    client_factory.last.receive("hello")
    assert listener.contents == []
    assert replacement.contents == [Text("hello")]


def test_listener_exception_does_not_break_transport(connected_transport, client_factory, make_listener):
    class Failing(make_listener):
        def on_content_received(self, content):
            raise RuntimeError("ui blew up")

    failing = Failing()
    connected_transport.listener = failing
    client_factory.last.receive("boom")
    assert connected_transport.is_connected
