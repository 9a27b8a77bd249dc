"""Tests for claude_session_monitor.services.hook_server."""

import os
import uuid
from unittest.mock import MagicMock

import orjson
import pytest
from PySide6.QtNetwork import QLocalSocket

from claude_session_monitor.services.hook_server import HookServer

from helpers import CWD, pump_events


def _payload(event="PreToolUse", tool_use_id="t1", **extra) -> bytes:
    data = {
        "session_id": "s1", "cwd": CWD, "event": event, "status": "running_tool",
        "tool": "Bash", "tool_use_id": tool_use_id,
    }
    data.update(extra)
    return orjson.dumps(data) + b"\n"


@pytest.fixture
def server(qapp):
    s = HookServer()
    yield s
    s.stop()


@pytest.fixture
def received(server):
    events = []
    server.hook_received.connect(lambda hook: events.append(hook))
    return events


def _connected_socket():
    socket = MagicMock()
    socket.state.return_value = QLocalSocket.LocalSocketState.ConnectedState
    socket.write.return_value = 32
    return socket


class TestHandleLine:
    def test_plain_hook_closes_connection(self, server, received):
        socket = _connected_socket()
        server._handle_line(socket, _payload().strip())
        assert received[0].event == "PreToolUse"
        assert received[0].tool_use_id == "t1"
        socket.disconnectFromServer.assert_called_once()
        assert not server.has_pending("t1")

    def test_permission_request_held_open(self, server, received):
        socket = _connected_socket()
        server._handle_line(socket, _payload("PermissionRequest", status="waiting_for_approval").strip())
        assert server.has_pending("t1")
        socket.disconnectFromServer.assert_not_called()

    def test_malformed_payload(self, server, received):
        socket = _connected_socket()
        server._handle_line(socket, b"{nope")
        server._handle_line(socket, b"[1, 2]")
        assert received == []
        assert socket.disconnectFromServer.call_count == 2


class TestRespond:
    def test_decision_written(self, server):
        socket = _connected_socket()
        server._handle_line(socket, _payload("PermissionRequest").strip())

        assert server.respond("t1", "deny", "too risky")

        written = socket.write.call_args[0][0]
        assert orjson.loads(written) == {"decision": "deny", "reason": "too risky"}
        assert not server.has_pending("t1")

    def test_unknown_request(self, server):
        assert not server.respond("missing", "allow")

    def test_dead_socket(self, server):
        socket = _connected_socket()
        socket.state.return_value = QLocalSocket.LocalSocketState.UnconnectedState
        server._handle_line(socket, _payload("PermissionRequest").strip())
        assert not server.respond("t1", "allow")
        socket.write.assert_not_called()

    def test_disconnect_before_decision(self, server):
        closed = []
        server.channel_closed.connect(lambda sid, tid: closed.append((sid, tid)))
        socket = _connected_socket()
        server._handle_line(socket, _payload("PermissionRequest").strip())
        server._on_disconnected(socket)
        assert closed == [("s1", "t1")]
        assert not server.has_pending("t1")


class TestLocalSocketRoundTrip:
    def test_request_and_decision(self, server, received):
        name = f"csm-test-{os.getpid()}-{uuid.uuid4().hex[:8]}"
        assert server.start(name)

        client = QLocalSocket()
        client.connectToServer(name)
        assert client.waitForConnected(2000)
        client.write(_payload("PermissionRequest", status="waiting_for_approval"))
        client.flush()

        pump_events(2.0, until=lambda: received)
        assert received and received[0].tool_use_id == "t1"

        assert server.respond("t1", "allow")
        pump_events(2.0, until=lambda: client.bytesAvailable() > 0)
        assert orjson.loads(bytes(client.readAll()).strip()) == {"decision": "allow"}
        client.abort()
