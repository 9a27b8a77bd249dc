"""Tests for claude_session_monitor.services.config_manager."""

import pytest

from claude_session_monitor.services.config_manager import ConfigManager


@pytest.fixture
def config(qapp, tmp_path):
    """Create a ConfigManager with isolated QSettings."""
    from PySide6.QtCore import QSettings
    settings = QSettings(str(tmp_path / "config.ini"), QSettings.IniFormat)
    return ConfigManager(settings)


# ---------------------------------------------------------------------------
# 1. Defaults
# ---------------------------------------------------------------------------

def test_default_string(config):
    assert config.get_string("transcripts/projectsDir") == "~/.claude/projects"


def test_default_numbers(config):
    assert config.get_int("sync/debounceMs") == 100
    assert config.get_float("reconcile/graceSeconds") == 2.0
    assert config.get_bool("sync/watchFiles") is True


def test_unknown_key(config):
    assert config.get_string("nope/missing") == ""
    assert config.get_int("nope/missing") == 0


# ---------------------------------------------------------------------------
# 2. Set and get
# ---------------------------------------------------------------------------

def test_set_get_int(config):
    config.set_int("sync/debounceMs", 250)
    assert config.get_int("sync/debounceMs") == 250


def test_set_get_float(config):
    config.set_float("reconcile/graceSeconds", 0.5)
    assert config.get_float("reconcile/graceSeconds") == 0.5


def test_set_get_bool(config):
    config.set_bool("focus/enabled", False)
    assert config.get_bool("focus/enabled") is False


def test_bad_int_falls_back(config):
    config.set_string("sync/debounceMs", "soon")
    assert config.get_int("sync/debounceMs") == 100


# ---------------------------------------------------------------------------
# 3. Change notification
# ---------------------------------------------------------------------------

def test_settings_changed_signal(config):
    keys = []
    config.settings_changed.connect(lambda k: keys.append(k))
    config.set_string("transcripts/todosDir", "/tmp/todos")
    config.reset("transcripts/todosDir")
    assert keys == ["transcripts/todosDir", "transcripts/todosDir"]


def test_reset_restores_default(config):
    config.set_int("sync/debounceMs", 5)
    config.reset("sync/debounceMs")
    assert config.get_int("sync/debounceMs") == 100
