"""Map a session's working directory to its Claude Code transcript location."""

import re
from pathlib import Path

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def encode_path(path: str) -> str:
    """Encode a working directory to a Claude project directory name.

    /home/wiz/my.app → -home-wiz-my-app
    """
    if not path:
        return ""
    return _NON_ALNUM.sub("-", path)


def transcript_path(projects_root: str | Path, cwd: str, session_id: str) -> Path:
    """Location of the JSONL transcript for a session."""
    return Path(projects_root).expanduser() / encode_path(cwd) / f"{session_id}.jsonl"


def subagent_transcript_paths(
    projects_root: str | Path, cwd: str, session_id: str, agent_id: str,
) -> list[Path]:
    """Candidate locations of a delegated agent's transcript, newest layout first."""
    project_dir = Path(projects_root).expanduser() / encode_path(cwd)
    return [
        project_dir / session_id / "subagents" / f"agent-{agent_id}.jsonl",
        project_dir / f"agent-{agent_id}.jsonl",
    ]


def folder_name(cwd: str) -> str:
    """Last path segment of a working directory.

    /home/wiz/AI/LLM → LLM
    """
    return cwd.rstrip("/").rsplit("/", 1)[-1] if cwd else ""
