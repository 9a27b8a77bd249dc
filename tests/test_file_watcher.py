"""Tests for claude_session_monitor.services.file_watcher."""

import time

import pytest

from claude_session_monitor.services.file_watcher import FileWatcher


@pytest.fixture
def watcher(qapp):
    w = FileWatcher()
    yield w
    w.stop()


class TestFileWatcherSessions:
    def test_existing_file_watched(self, watcher, tmp_path):
        f = tmp_path / "s1.jsonl"
        f.write_text("{}\n")
        watcher.watch_session("s1", str(f))
        assert str(f) in watcher._watcher.files()
        assert watcher.watched_sessions() == ["s1"]

    def test_unwatch(self, watcher, tmp_path):
        f = tmp_path / "s1.jsonl"
        f.write_text("{}\n")
        watcher.watch_session("s1", str(f))
        watcher.unwatch_session("s1")
        assert watcher.watched_sessions() == []
        assert len(watcher._watcher.files()) == 0

    def test_double_watch_no_duplicate(self, watcher, tmp_path):
        f = tmp_path / "s1.jsonl"
        f.write_text("{}\n")
        watcher.watch_session("s1", str(f))
        watcher.watch_session("s1", str(f))
        assert watcher.watched_sessions() == ["s1"]

    def test_missing_file_watches_directory(self, watcher, tmp_path):
        watcher.watch_session("s1", str(tmp_path / "s1.jsonl"))
        assert str(tmp_path) in watcher._watcher.directories()
        watcher.unwatch_session("s1")
        assert len(watcher._watcher.directories()) == 0

    def test_stop_clears_everything(self, watcher, tmp_path):
        f = tmp_path / "s1.jsonl"
        f.write_text("{}\n")
        watcher.watch_session("s1", str(f))
        watcher.watch_session("s2", str(tmp_path / "s2.jsonl"))
        watcher.stop()
        assert len(watcher._watcher.directories()) == 0
        assert len(watcher._watcher.files()) == 0
        assert watcher.watched_sessions() == []


class TestFileWatcherSignals:
    def test_append_emits_session_id(self, watcher, qapp, tmp_path):
        """Appending to a watched transcript emits transcript_changed."""
        f = tmp_path / "s1.jsonl"
        f.write_text("{}\n")
        watcher.watch_session("s1", str(f))

        received = []
        watcher.transcript_changed.connect(lambda sid: received.append(sid))

        time.sleep(0.05)
        with open(f, "a") as fh:
            fh.write('{"updated": true}\n')

        for _ in range(20):
            qapp.processEvents()
            time.sleep(0.05)

        assert received and received[0] == "s1"

    def test_created_file_is_attached(self, watcher, qapp, tmp_path):
        """A transcript written after watching starts is picked up via its directory."""
        f = tmp_path / "s1.jsonl"
        watcher.watch_session("s1", str(f))

        received = []
        watcher.transcript_changed.connect(lambda sid: received.append(sid))

        time.sleep(0.05)
        f.write_text("{}\n")

        for _ in range(20):
            qapp.processEvents()
            time.sleep(0.05)

        assert received and received[0] == "s1"
        assert str(f) in watcher._watcher.files()
