"""Bring the terminal pane hosting a session to the front."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

TMUX_TIMEOUT_S = 2.0
_MAX_ANCESTORS = 32


class WindowFocuser(Protocol):
    def focus_pid(self, pid: int) -> bool: ...

    def focus_directory(self, cwd: str) -> bool: ...


class TmuxFocuser:
    """Selects the tmux pane running a session's process."""

    def __init__(self, tmux_binary: str = "tmux", proc_root: str | Path = "/proc"):
        self._tmux = tmux_binary
        self._proc_root = Path(proc_root)

    def focus_pid(self, pid: int) -> bool:
        """Focus the pane whose shell is ``pid`` or one of its ancestors."""
        panes = self._list_panes()
        if not panes:
            return False
        by_pid = {pane_pid: target for target, pane_pid, _ in panes}
        for candidate in self._ancestry(pid):
            target = by_pid.get(candidate)
            if target is not None:
                return self._select(target)
        logger.debug("No tmux pane hosts pid %d", pid)
        return False

    def focus_directory(self, cwd: str) -> bool:
        """Focus the first pane whose current path is ``cwd``."""
        wanted = cwd.rstrip("/")
        for target, _, path in self._list_panes():
            if path.rstrip("/") == wanted:
                return self._select(target)
        logger.debug("No tmux pane in %s", cwd)
        return False

    def _list_panes(self) -> list[tuple[str, int, str]]:
        out = self._run(
            "list-panes", "-a", "-F", "#{session_name}:#{window_index}.#{pane_index}\t#{pane_pid}\t#{pane_current_path}",
        )
        if out is None:
            return []
        panes = []
        for line in out.splitlines():
            parts = line.split("\t")
            if len(parts) != 3 or not parts[1].isdigit():
                continue
            panes.append((parts[0], int(parts[1]), parts[2]))
        return panes

    def _select(self, target: str) -> bool:
        window = target.rsplit(".", 1)[0]
        if self._run("select-window", "-t", window) is None:
            return False
        if self._run("select-pane", "-t", target) is None:
            return False
        # Best effort: a detached server has no client to switch
        self._run("switch-client", "-t", window)
        return True

    def _ancestry(self, pid: int) -> list[int]:
        """pid followed by its parents, read from /proc/<pid>/stat."""
        chain = []
        current = pid
        while current > 1 and len(chain) < _MAX_ANCESTORS:
            chain.append(current)
            parent = self._parent_pid(current)
            if parent is None or parent == current:
                break
            current = parent
        return chain

    def _parent_pid(self, pid: int) -> Optional[int]:
        try:
            stat = (self._proc_root / str(pid) / "stat").read_text()
        except OSError:
            return None
        # The command name may hold spaces and parens; fields resume after the last ")"
        fields = stat.rsplit(")", 1)[-1].split()
        if len(fields) < 2 or not fields[1].isdigit():
            return None
        return int(fields[1])

    def _run(self, *args: str) -> Optional[str]:
        if shutil.which(self._tmux) is None:
            logger.debug("%s not found", self._tmux)
            return None
        try:
            proc = subprocess.run(
                [self._tmux, *args],
                capture_output=True, text=True, timeout=TMUX_TIMEOUT_S,
            )
        except subprocess.TimeoutExpired:
            logger.debug("tmux %s timed out", args[0])
            return None
        except OSError:
            logger.debug("tmux %s failed to start", args[0], exc_info=True)
            return None
        if proc.returncode != 0:
            logger.debug("tmux %s exited %d: %s", args[0], proc.returncode, proc.stderr.strip())
            return None
        return proc.stdout
