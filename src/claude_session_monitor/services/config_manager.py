"""Application configuration manager wrapping QSettings."""

import logging

from PySide6.QtCore import QObject, Signal, Slot, QSettings

logger = logging.getLogger(__name__)

DEFAULTS = {
    "transcripts/projectsDir": "~/.claude/projects",
    "transcripts/todosDir": "~/.claude/todos",
    "sync/debounceMs": 100,
    "sync/watchFiles": True,
    "reconcile/graceSeconds": 2.0,
    "focus/enabled": True,
    "advanced/debugLogging": False,
}


class ConfigManager(QObject):
    """Centralized monitor settings."""

    settings_changed = Signal(str)  # key

    def __init__(self, settings: QSettings | None = None, parent=None):
        super().__init__(parent)
        self._settings = settings if settings is not None else QSettings()

    @Slot(str, result=str)
    def get_string(self, key: str) -> str:
        return str(self._settings.value(key, DEFAULTS.get(key, "")))

    @Slot(str, result=int)
    def get_int(self, key: str) -> int:
        val = self._settings.value(key, DEFAULTS.get(key, 0))
        try:
            return int(val)
        except (ValueError, TypeError):
            logger.debug("Bad int for %s: %r", key, val)
            return DEFAULTS.get(key, 0)

    @Slot(str, result=float)
    def get_float(self, key: str) -> float:
        val = self._settings.value(key, DEFAULTS.get(key, 0.0))
        try:
            return float(val)
        except (ValueError, TypeError):
            logger.debug("Bad float for %s: %r", key, val)
            return float(DEFAULTS.get(key, 0.0))

    @Slot(str, result=bool)
    def get_bool(self, key: str) -> bool:
        val = self._settings.value(key, DEFAULTS.get(key, False))
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            return val.lower() in ("true", "1", "yes")
        return bool(val)

    @Slot(str, str)
    def set_string(self, key: str, value: str):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    @Slot(str, int)
    def set_int(self, key: str, value: int):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    @Slot(str, float)
    def set_float(self, key: str, value: float):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    @Slot(str, bool)
    def set_bool(self, key: str, value: bool):
        self._settings.setValue(key, value)
        self.settings_changed.emit(key)

    @Slot(str)
    def reset(self, key: str):
        """Drop a stored override so the default applies again."""
        self._settings.remove(key)
        self.settings_changed.emit(key)
