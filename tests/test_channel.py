"""Tests for the socket-backed IPC channel."""

import socket
import threading
import pytest

from mcfaas.ipc import ErrorMessage, IpcChannel, LoadMessage


@pytest.fixture
def channels():
    parent, child_sock = IpcChannel.pair(name="test")
    child = IpcChannel(child_sock, name="child")
    yield parent, child
    parent.close()
    child.close()


class TestChannel:

    def test_messages_arrive_in_send_order(self, channels):
        parent, child = channels
        received, done = [], threading.Event()

        def handler(message):
            received.append(message.deployment["id"])
            if len(received) == 20:
                done.set()

        parent.subscribe(handler)
        for i in range(20):
            child.send(LoadMessage(deployment={"id": str(i)}))
        assert done.wait(5)
        assert received == [str(i) for i in range(20)]

    def test_single_subscriber(self, channels):
        parent, _ = channels
        parent.subscribe(lambda message: None)
        with pytest.raises(RuntimeError):
            parent.subscribe(lambda message: None)

    def test_malformed_and_unknown_messages_are_dropped(self, channels):
        parent, child = channels
        received, done = [], threading.Event()

        def handler(message):
            received.append(message)
            done.set()

        parent.subscribe(handler)
        child._sock.sendall(b"{not json\n")
        child._sock.sendall(b'{"type": "getApplicationMetadata", "data": {}}\n')
        child._sock.sendall(b'{"type": "somethingNew", "data": 1}\n')
        child.send(ErrorMessage(message="boom"))
        assert done.wait(5)
        assert received == [ErrorMessage(message="boom")]

    def test_handler_errors_do_not_stop_delivery(self, channels):
        parent, child = channels
        received, done = [], threading.Event()

        def handler(message):
            if message.message == "first":
                raise RuntimeError("handler bug")
            received.append(message.message)
            done.set()

        parent.subscribe(handler)
        child.send(ErrorMessage(message="first"))
        child.send(ErrorMessage(message="second"))
        assert done.wait(5)
        assert received == ["second"]

    def test_close_callback_runs_when_peer_closes(self, channels):
        parent, child = channels
        closed = threading.Event()
        parent.subscribe(lambda message: None, on_close=closed.set)
        child.close()
        assert closed.wait(5)
        parent.join(5)
        assert parent.closed

    def test_blocking_iterator(self, channels):
        parent, child = channels
        parent.send(LoadMessage(deployment={"id": "demo"}))
        parent.close()
        assert list(child.messages()) == [LoadMessage(deployment={"id": "demo"})]

    def test_send_to_closed_peer_raises(self, channels):
        parent, child = channels
        child.close()
        with pytest.raises(OSError):
            for _ in range(100):
                parent.send(LoadMessage(deployment={"id": "demo"}))

    def test_from_fd(self):
        a, b = socket.socketpair()
        left = IpcChannel(a)
        right = IpcChannel.from_fd(b.detach())
        try:
            left.send(ErrorMessage(message="hi"))
            assert next(right.messages()) == ErrorMessage(message="hi")
        finally:
            left.close()
            right.close()
