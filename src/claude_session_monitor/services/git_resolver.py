"""Git metadata resolver: reads .git for branch and repository name."""

import logging
from pathlib import Path
from urllib.parse import urlparse

from claude_session_monitor.utils.path_codec import folder_name

logger = logging.getLogger(__name__)


def _git_dir(project_path: str) -> Path | None:
    """The git directory of a checkout, following worktree pointers."""
    git_path = Path(project_path) / ".git"
    if git_path.is_dir():
        return git_path
    if git_path.is_file():
        # Worktree: .git is a file containing "gitdir: <path>"
        content = git_path.read_text().strip()
        if content.startswith("gitdir:"):
            return Path(content[len("gitdir:"):].strip())
    return None


def resolve_git_branch(project_path: str) -> str:
    """Read the current git branch from a project path.

    Detached HEADs yield the short commit hash.
    """
    if not project_path:
        return ""
    try:
        git_dir = _git_dir(project_path)
        if git_dir is None:
            return ""
        head_path = git_dir / "HEAD"
        if not head_path.exists():
            return ""

        head = head_path.read_text().strip()
        if head.startswith("ref: refs/heads/"):
            return head[len("ref: refs/heads/"):]
        return head[:8]

    except (OSError, ValueError):
        logger.debug("Failed to resolve git branch for %s", project_path, exc_info=True)
        return ""


def resolve_remote_url(project_path: str) -> str:
    """Read the origin remote URL from a project's git config."""
    if not project_path:
        return ""
    try:
        git_dir = _git_dir(project_path)
        if git_dir is None:
            return ""
        config_path = git_dir / "config"
        if (Path(project_path) / ".git").is_file():
            # Worktrees share the main repository's config two levels up
            shared = git_dir.parent.parent / "config"
            if shared.exists():
                config_path = shared
        if not config_path.exists():
            return ""
        return _parse_remote_url(config_path)

    except (OSError, ValueError):
        logger.debug("Failed to resolve remote for %s", project_path, exc_info=True)
        return ""


def resolve_repo_name(project_path: str) -> str:
    """Repository name from the origin remote, else the folder name."""
    name = repo_name_from_url(resolve_remote_url(project_path))
    return name or folder_name(project_path)


def repo_name_from_url(url: str) -> str:
    """git@github.com:user/repo.git and https://github.com/user/repo → repo"""
    url = url.strip()
    if not url:
        return ""
    if "://" in url:
        path = urlparse(url).path
    elif ":" in url:
        path = url.rsplit(":", 1)[1]
    else:
        path = url
    path = path.strip("/")
    if path.endswith(".git"):
        path = path[:-4]
    return path.rsplit("/", 1)[-1]


def _parse_remote_url(config_path: Path) -> str:
    """Parse the origin remote URL from a git config file."""
    try:
        content = config_path.read_text()
    except OSError:
        return ""

    in_origin = False
    for line in content.splitlines():
        stripped = line.strip()
        if stripped == '[remote "origin"]':
            in_origin = True
            continue
        if in_origin:
            if stripped.startswith("["):
                break
            key, sep, value = stripped.partition("=")
            if sep and key.strip() == "url":
                return value.strip()
    return ""
