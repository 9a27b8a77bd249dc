"""Services for Claude Session Monitor."""

from claude_session_monitor.services.session_store import SessionStore
from claude_session_monitor.services.sync_scheduler import SyncScheduler
from claude_session_monitor.services.conversation_parser import ConversationParser, TranscriptSource
from claude_session_monitor.services.file_watcher import FileWatcher
from claude_session_monitor.services.hook_server import HookServer
from claude_session_monitor.services.config_manager import ConfigManager
from claude_session_monitor.services.window_focus import TmuxFocuser, WindowFocuser
from claude_session_monitor.services.git_resolver import resolve_git_branch, resolve_repo_name

__all__ = [
    "SessionStore",
    "SyncScheduler",
    "ConversationParser",
    "TranscriptSource",
    "FileWatcher",
    "HookServer",
    "ConfigManager",
    "TmuxFocuser",
    "WindowFocuser",
    "resolve_git_branch",
    "resolve_repo_name",
]
