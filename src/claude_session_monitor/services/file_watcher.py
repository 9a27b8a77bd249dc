"""File system watcher that reports transcript growth per session."""

import logging
import os

from PySide6.QtCore import QObject, Signal, QFileSystemWatcher

logger = logging.getLogger(__name__)


class FileWatcher(QObject):
    """Watches session transcripts and emits the owning session id on change.

    A transcript that does not exist yet is tracked through its directory and
    attached as soon as it appears.
    """

    transcript_changed = Signal(str)  # session_id

    def __init__(self, parent=None):
        super().__init__(parent)
        self._watcher = QFileSystemWatcher(self)
        self._paths: dict[str, str] = {}  # session_id -> transcript path
        self._sessions_by_path: dict[str, str] = {}
        self._waiting_dirs: dict[str, set[str]] = {}  # dir -> session ids

        self._watcher.fileChanged.connect(self._on_file_changed)
        self._watcher.directoryChanged.connect(self._on_directory_changed)

    def watch_session(self, session_id: str, file_path: str):
        """Add a session transcript to the watch list."""
        file_path = str(file_path)
        if self._paths.get(session_id) == file_path:
            return
        self.unwatch_session(session_id)
        self._paths[session_id] = file_path
        self._sessions_by_path[file_path] = session_id

        if os.path.exists(file_path):
            self._watcher.addPath(file_path)
            return

        directory = os.path.dirname(file_path)
        waiting = self._waiting_dirs.setdefault(directory, set())
        waiting.add(session_id)
        if os.path.isdir(directory) and directory not in self._watcher.directories():
            self._watcher.addPath(directory)
        logger.debug("Transcript %s not there yet, watching %s", file_path, directory)

    def unwatch_session(self, session_id: str):
        """Remove a session transcript from the watch list."""
        file_path = self._paths.pop(session_id, None)
        if file_path is None:
            return
        self._sessions_by_path.pop(file_path, None)
        if file_path in self._watcher.files():
            self._watcher.removePath(file_path)

        directory = os.path.dirname(file_path)
        waiting = self._waiting_dirs.get(directory)
        if waiting is not None:
            waiting.discard(session_id)
            if not waiting:
                self._drop_directory(directory)

    def watched_sessions(self) -> list[str]:
        return list(self._paths)

    def stop(self):
        """Stop all file watching."""
        if self._watcher.files():
            self._watcher.removePaths(self._watcher.files())
        if self._watcher.directories():
            self._watcher.removePaths(self._watcher.directories())
        self._paths.clear()
        self._sessions_by_path.clear()
        self._waiting_dirs.clear()

    def _drop_directory(self, directory: str):
        self._waiting_dirs.pop(directory, None)
        if directory in self._watcher.directories():
            self._watcher.removePath(directory)

    def _on_file_changed(self, path: str):
        session_id = self._sessions_by_path.get(path)
        if session_id is None:
            return
        # Editors and rotations replace the file; Qt then drops it from the watch list
        if os.path.exists(path) and path not in self._watcher.files():
            self._watcher.addPath(path)
        self.transcript_changed.emit(session_id)

    def _on_directory_changed(self, directory: str):
        waiting = self._waiting_dirs.get(directory)
        if not waiting:
            return
        for session_id in list(waiting):
            path = self._paths.get(session_id)
            if path is None or not os.path.exists(path):
                continue
            waiting.discard(session_id)
            self._watcher.addPath(path)
            self.transcript_changed.emit(session_id)
        if not waiting:
            self._drop_directory(directory)
