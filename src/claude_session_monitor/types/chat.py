"""Visible transcript entries for a tracked session."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ChatItemKind(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    THINKING = "thinking"
    TOOL_CALL = "toolCall"
    INTERRUPTED = "interrupted"


class ToolStatus(str, Enum):
    RUNNING = "running"
    WAITING_FOR_APPROVAL = "waitingForApproval"
    SUCCESS = "success"
    ERROR = "error"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in (ToolStatus.SUCCESS, ToolStatus.ERROR, ToolStatus.INTERRUPTED)


@dataclass(frozen=True)
class SubagentToolCall:
    """A tool call made inside a delegated (Task) sub-conversation."""
    id: str
    name: str
    input: dict[str, Any]
    status: ToolStatus
    timestamp: datetime


@dataclass(frozen=True)
class ToolCallInfo:
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    status: ToolStatus = ToolStatus.RUNNING
    result: Optional[str] = None
    structured_result: Optional[dict[str, Any]] = None
    subagent_tools: tuple[SubagentToolCall, ...] = ()


@dataclass(frozen=True)
class ChatItem:
    id: str
    kind: ChatItemKind
    timestamp: datetime
    text: str = ""
    tool: Optional[ToolCallInfo] = None

    @property
    def is_tool_call(self) -> bool:
        return self.kind == ChatItemKind.TOOL_CALL and self.tool is not None

    @property
    def tool_status(self) -> Optional[ToolStatus]:
        return self.tool.status if self.tool is not None else None

    def with_tool(self, **changes) -> "ChatItem":
        """Return a copy with fields of the tool call replaced."""
        if self.tool is None:
            return self
        return replace(self, tool=replace(self.tool, **changes))
