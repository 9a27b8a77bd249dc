"""Application entry point: wires the store to its collaborators."""

import logging
import signal
import sys
from typing import Optional

from PySide6.QtCore import QCoreApplication, QObject

from claude_session_monitor.logging_config import setup_logging
from claude_session_monitor.services.config_manager import ConfigManager
from claude_session_monitor.services.conversation_parser import ConversationParser
from claude_session_monitor.services.file_watcher import FileWatcher
from claude_session_monitor.services.hook_server import HookServer
from claude_session_monitor.services.session_store import SessionStore
from claude_session_monitor.services.window_focus import TmuxFocuser
from claude_session_monitor.types.events import HookReceived, PermissionChannelFailed

logger = logging.getLogger(__name__)


def create_store(config: Optional[ConfigManager] = None, parent=None) -> SessionStore:
    """Build a SessionStore configured from settings."""
    config = config or ConfigManager()
    parser = ConversationParser(
        projects_root=config.get_string("transcripts/projectsDir"),
        todos_dir=config.get_string("transcripts/todosDir"),
    )
    watcher = FileWatcher() if config.get_bool("sync/watchFiles") else None
    focuser = TmuxFocuser() if config.get_bool("focus/enabled") else None
    store = SessionStore(
        parser,
        debounce_ms=config.get_int("sync/debounceMs"),
        reconcile_grace_s=config.get_float("reconcile/graceSeconds"),
        watcher=watcher,
        focuser=focuser,
        parent=parent,
    )
    if watcher is not None:
        watcher.setParent(store)

    def on_setting_changed(key: str):
        if key == "sync/debounceMs":
            store.scheduler.set_debounce_ms(config.get_int(key))

    config.settings_changed.connect(on_setting_changed)
    return store


class SessionMonitor(QObject):
    """Routes hook traffic into the store and answers approvals over the hook channel."""

    def __init__(self, store: SessionStore, server: HookServer, parent=None):
        super().__init__(parent)
        self._store = store
        self._server = server
        server.hook_received.connect(lambda hook: store.process(HookReceived(hook)))
        server.channel_closed.connect(
            lambda session_id, tool_use_id: store.process(PermissionChannelFailed(session_id, tool_use_id))
        )

    @property
    def store(self) -> SessionStore:
        return self._store

    def approve(self, session_id: str, tool_use_id: str):
        if self._server.respond(tool_use_id, "allow"):
            self._store.approve(session_id, tool_use_id)
        else:
            self._store.approval_failed(session_id, tool_use_id)

    def deny(self, session_id: str, tool_use_id: str, reason: Optional[str] = None):
        if self._server.respond(tool_use_id, "deny", reason):
            self._store.deny(session_id, tool_use_id, reason)
        else:
            self._store.approval_failed(session_id, tool_use_id)


def _log_sessions(sessions: list):
    waiting = [s for s in sessions if s.needs_attention]
    logger.debug("%d sessions, %d need attention", len(sessions), len(waiting))
    for session in waiting:
        logger.debug("  %s: %s", session.display_title, session.phase)


def run() -> int:
    """Launch the monitor."""
    app = QCoreApplication(sys.argv)
    app.setApplicationName("Claude Session Monitor")
    app.setOrganizationName("claude-session-monitor")

    config = ConfigManager()
    setup_logging(debug=config.get_bool("advanced/debugLogging"))

    # Allow Ctrl+C to kill the app
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    store = create_store(config)
    server = HookServer()
    if not server.start():
        return 1
    SessionMonitor(store, server, app)
    store.sessions_changed.connect(_log_sessions)

    ret = app.exec()
    server.stop()
    store.cleanup()
    return ret
