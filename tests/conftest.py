"""Shared test fixtures for Claude Session Monitor."""

import os
import sys
from pathlib import Path

import pytest

from helpers import FakeClock, FakeTranscriptSource


@pytest.fixture(scope="session")
def qapp():
    """Create a QCoreApplication for tests that need Qt."""
    os.environ["QT_QPA_PLATFORM"] = "offscreen"
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv or ["test"])
    yield app


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def parser() -> FakeTranscriptSource:
    return FakeTranscriptSource()


@pytest.fixture
def store(qapp, parser, clock):
    from claude_session_monitor.services.session_store import SessionStore

    s = SessionStore(
        parser,
        debounce_ms=10,
        clock=clock,
        branch_resolver=lambda cwd: "",
        repo_name_resolver=lambda cwd: cwd.rstrip("/").rsplit("/", 1)[-1],
    )
    yield s
    s.cleanup()


@pytest.fixture
def tmp_projects_dir(tmp_path) -> Path:
    """A temporary Claude projects directory with one project."""
    projects_dir = tmp_path / ".claude" / "projects"
    (projects_dir / "-home-wiz-projects-myapp").mkdir(parents=True)
    return projects_dir


@pytest.fixture
def tmp_todos_dir(tmp_path) -> Path:
    todos_dir = tmp_path / ".claude" / "todos"
    todos_dir.mkdir(parents=True)
    return todos_dir
