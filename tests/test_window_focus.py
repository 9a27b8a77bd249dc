"""Tests for claude_session_monitor.services.window_focus."""

import subprocess
from unittest.mock import patch

import pytest

from claude_session_monitor.services.window_focus import TmuxFocuser

PANES = (
    "main:0.0\t100\t/home/wiz/other\n"
    "main:1.0\t200\t/home/wiz/projects/myapp\n"
    "work:2.1\t300\t/home/wiz/projects/myapp/\n"
)


@pytest.fixture
def proc_root(tmp_path):
    """Fake /proc: 900 (claude) -> 850 (node) -> 300 (zsh) -> 1."""
    for pid, ppid, comm in [(900, 850, "claude"), (850, 300, "node (v20)"), (300, 1, "zsh")]:
        d = tmp_path / str(pid)
        d.mkdir()
        (d / "stat").write_text(f"{pid} ({comm}) S {ppid} {pid} {pid} 0 -1 4194560\n")
    return tmp_path


@pytest.fixture
def tmux_calls():
    """Record tmux invocations and answer list-panes with PANES."""
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd[1:])
        stdout = PANES if cmd[1] == "list-panes" else ""
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")

    with patch("claude_session_monitor.services.window_focus.shutil.which", return_value="/usr/bin/tmux"), \
            patch("claude_session_monitor.services.window_focus.subprocess.run", side_effect=fake_run):
        yield calls


class TestFocusPid:
    def test_walks_up_to_pane_shell(self, proc_root, tmux_calls):
        focuser = TmuxFocuser(proc_root=proc_root)
        assert focuser.focus_pid(900)
        assert ["select-window", "-t", "work:2"] in tmux_calls
        assert ["select-pane", "-t", "work:2.1"] in tmux_calls
        assert ["switch-client", "-t", "work:2"] in tmux_calls

    def test_unrelated_pid(self, proc_root, tmux_calls):
        focuser = TmuxFocuser(proc_root=proc_root)
        assert not focuser.focus_pid(4242)
        assert [c[0] for c in tmux_calls] == ["list-panes"]


class TestFocusDirectory:
    def test_first_matching_pane(self, tmux_calls):
        focuser = TmuxFocuser()
        assert focuser.focus_directory("/home/wiz/projects/myapp")
        assert ["select-pane", "-t", "main:1.0"] in tmux_calls

    def test_no_match(self, tmux_calls):
        assert not TmuxFocuser().focus_directory("/elsewhere")


class TestTmuxUnavailable:
    def test_missing_binary(self):
        with patch("claude_session_monitor.services.window_focus.shutil.which", return_value=None):
            assert not TmuxFocuser().focus_directory("/home/wiz/projects/myapp")

    def test_timeout(self):
        with patch("claude_session_monitor.services.window_focus.shutil.which", return_value="/usr/bin/tmux"), \
                patch("claude_session_monitor.services.window_focus.subprocess.run",
                      side_effect=subprocess.TimeoutExpired("tmux", 2.0)):
            assert not TmuxFocuser().focus_pid(900)

    def test_select_failure(self):
        def fake_run(cmd, **kwargs):
            if cmd[1] == "list-panes":
                return subprocess.CompletedProcess(cmd, 0, stdout=PANES, stderr="")
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="can't find window")

        with patch("claude_session_monitor.services.window_focus.shutil.which", return_value="/usr/bin/tmux"), \
                patch("claude_session_monitor.services.window_focus.subprocess.run", side_effect=fake_run):
            assert not TmuxFocuser().focus_directory("/home/wiz/other")
