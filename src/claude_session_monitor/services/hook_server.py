"""Local socket that receives hook payloads from the agent CLI.

Each connection carries one JSON line. A PermissionRequest connection stays
open until the request is answered with :meth:`HookServer.respond`; if the
hook process goes away first, :attr:`HookServer.channel_closed` fires.
"""

import logging
from typing import Optional

import orjson
from PySide6.QtCore import QObject, Signal
from PySide6.QtNetwork import QLocalServer, QLocalSocket

from claude_session_monitor.types.events import HookEvent

logger = logging.getLogger(__name__)

SOCKET_NAME = "claude-session-monitor-hooks"
MAX_PAYLOAD = 1024 * 1024


class HookServer(QObject):
    hook_received = Signal(object)  # HookEvent
    channel_closed = Signal(str, str)  # session_id, tool_use_id

    def __init__(self, parent=None):
        super().__init__(parent)
        self._server = QLocalServer(self)
        self._server.newConnection.connect(self._on_new_connection)
        self._buffers: dict[QLocalSocket, bytearray] = {}
        # tool_use_id -> (session_id, socket awaiting a decision)
        self._pending: dict[str, tuple[str, QLocalSocket]] = {}

    def start(self, name: str = SOCKET_NAME) -> bool:
        QLocalServer.removeServer(name)
        if not self._server.listen(name):
            logger.error("Cannot listen on %s: %s", name, self._server.errorString())
            return False
        logger.info("Listening for hooks on %s", self._server.fullServerName())
        return True

    def stop(self):
        for tool_use_id in list(self._pending):
            _, socket = self._pending.pop(tool_use_id)
            socket.abort()
        self._server.close()

    def has_pending(self, tool_use_id: str) -> bool:
        return tool_use_id in self._pending

    def respond(self, tool_use_id: str, decision: str, reason: Optional[str] = None) -> bool:
        """Answer an open approval request. Returns False if its channel is gone."""
        entry = self._pending.pop(tool_use_id, None)
        if entry is None:
            return False
        _, socket = entry
        if socket.state() != QLocalSocket.LocalSocketState.ConnectedState:
            return False
        payload = {"decision": decision}
        if reason:
            payload["reason"] = reason
        written = socket.write(orjson.dumps(payload) + b"\n")
        socket.flush()
        socket.disconnectFromServer()
        return written > 0

    def _on_new_connection(self):
        while self._server.hasPendingConnections():
            socket = self._server.nextPendingConnection()
            self._buffers[socket] = bytearray()
            socket.readyRead.connect(lambda s=socket: self._on_ready_read(s))
            socket.disconnected.connect(lambda s=socket: self._on_disconnected(s))

    def _on_ready_read(self, socket: QLocalSocket):
        buffer = self._buffers.get(socket)
        if buffer is None:
            return
        buffer.extend(bytes(socket.readAll()))
        if len(buffer) > MAX_PAYLOAD:
            logger.warning("Hook payload over %d bytes, dropping connection", MAX_PAYLOAD)
            self._buffers.pop(socket, None)
            socket.abort()
            return
        if b"\n" not in buffer:
            return
        line = bytes(buffer).split(b"\n", 1)[0]
        self._buffers.pop(socket, None)
        self._handle_line(socket, line)

    def _handle_line(self, socket: QLocalSocket, line: bytes):
        try:
            data = orjson.loads(line)
        except orjson.JSONDecodeError:
            logger.debug("Malformed hook payload: %r", line[:200])
            socket.disconnectFromServer()
            return
        if not isinstance(data, dict):
            socket.disconnectFromServer()
            return

        event = HookEvent.from_dict(data)
        if event.event == "PermissionRequest" and event.tool_use_id:
            self._pending[event.tool_use_id] = (event.session_id, socket)
        else:
            socket.disconnectFromServer()
        self.hook_received.emit(event)

    def _on_disconnected(self, socket: QLocalSocket):
        self._buffers.pop(socket, None)
        for tool_use_id, (session_id, pending) in list(self._pending.items()):
            if pending is socket:
                del self._pending[tool_use_id]
                logger.info("Approval channel for %s closed before a decision", tool_use_id[:12])
                self.channel_closed.emit(session_id, tool_use_id)
        socket.deleteLater()
