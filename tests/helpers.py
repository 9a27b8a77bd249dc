"""Shared test helpers."""

import json
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QCoreApplication

from claude_session_monitor.types.events import HookEvent, HookReceived
from claude_session_monitor.types.messages import (
    BlockType,
    ChatMessage,
    MessageBlock,
    ParseResult,
    TokenUsage,
)
from claude_session_monitor.types.sessions import ConversationInfo

T0 = datetime(2026, 2, 13, 10, 0, 0, tzinfo=timezone.utc)
CWD = "/home/wiz/projects/myapp"


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class FakeTranscriptSource:
    """In-memory stand-in for the transcript parser."""

    def __init__(self):
        self.incremental: list[ParseResult] = []
        self.full = ParseResult()
        self.info = ConversationInfo()
        self.todo: Optional[str] = None
        self.subagent_tools: dict[str, list] = {}
        self.incremental_calls: list[str] = []
        self.cleared: list[str] = []

    def parse_incremental(self, session_id, cwd):
        self.incremental_calls.append(session_id)
        return self.incremental.pop(0) if self.incremental else ParseResult()

    def parse_full(self, session_id, cwd):
        return self.full

    def clear_session(self, session_id, cwd):
        self.cleared.append(session_id)

    def conversation_info(self, session_id):
        return self.info

    def active_todo(self, session_id):
        return self.todo

    def parse_subagent_tools(self, agent_id, session_id, cwd):
        return self.subagent_tools.get(agent_id, [])

    def transcript_path(self, session_id, cwd):
        return Path("/nonexistent") / f"{session_id}.jsonl"


def hook(event: str, status: str = "", session_id: str = "s1", cwd: str = CWD, **fields) -> HookReceived:
    return HookReceived(HookEvent(session_id=session_id, cwd=cwd, event=event, status=status, **fields))


def text_block(text: str) -> MessageBlock:
    return MessageBlock(type=BlockType.TEXT, text=text)


def thinking_block(text: str) -> MessageBlock:
    return MessageBlock(type=BlockType.THINKING, text=text)


def tool_block(tool_id: str, name: str = "Bash", tool_input: Optional[dict] = None) -> MessageBlock:
    return MessageBlock(
        type=BlockType.TOOL_USE, tool_id=tool_id, tool_name=name, tool_input=tool_input or {},
    )


def user_msg(msg_id: str, text: str, at: datetime = T0) -> ChatMessage:
    return ChatMessage(id=msg_id, role="user", timestamp=at, content=[text_block(text)])


def assistant_msg(
    msg_id: str, blocks: list[MessageBlock], at: datetime = T0, usage: Optional[TokenUsage] = None,
) -> ChatMessage:
    return ChatMessage(id=msg_id, role="assistant", timestamp=at, content=blocks, usage=usage)


def jsonl_line(
    uuid: str,
    msg_type: str = "user",
    content="Hello",
    timestamp: str = "2026-02-13T10:00:00.000Z",
    **extra,
) -> str:
    """One transcript line as Claude Code writes it."""
    role = msg_type if msg_type in ("user", "assistant") else ""
    data = {
        "uuid": uuid,
        "parentUuid": None,
        "type": msg_type,
        "message": {"role": role, "content": content},
        "timestamp": timestamp,
        "cwd": CWD,
        "isSidechain": False,
    }
    data.update(extra)
    return json.dumps(data)


def write_lines(path: Path, lines: list[str], mode: str = "w"):
    with open(path, mode) as f:
        for line in lines:
            f.write(line + "\n")


def wait_for_history(store):
    """Wait for background history workers and deliver their results."""
    for worker in list(store._history_workers.values()):
        worker.wait(5000)
    for _ in range(5):
        QCoreApplication.processEvents()


def pump_events(seconds: float = 0.3, until=None):
    """Process Qt events for a while, or until ``until()`` is true."""
    deadline = time.monotonic() + seconds
    while time.monotonic() < deadline:
        QCoreApplication.processEvents()
        if until is not None and until():
            return
        time.sleep(0.01)
