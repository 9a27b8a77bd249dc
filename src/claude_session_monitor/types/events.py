"""Events accepted by the session store."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from claude_session_monitor.types.chat import SubagentToolCall, ToolStatus
from claude_session_monitor.types.messages import ChatMessage, ToolResult
from claude_session_monitor.types.phases import Phase, PermissionContext
from claude_session_monitor.types.sessions import ConversationInfo

# Hook names that mean the transcript has (probably) grown
SYNC_EVENTS = frozenset({"UserPromptSubmit", "PreToolUse", "PostToolUse", "Stop"})


@dataclass
class HookEvent:
    """A lifecycle signal emitted by the agent CLI's hook script."""
    session_id: str
    cwd: str
    event: str
    status: str = ""
    pid: Optional[int] = None
    tty: Optional[str] = None
    tool: Optional[str] = None
    tool_input: Optional[dict[str, Any]] = None
    tool_use_id: Optional[str] = None
    notification_type: Optional[str] = None
    message: Optional[str] = None
    git_branch: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "HookEvent":
        pid = data.get("pid")
        tool_input = data.get("tool_input")
        return cls(
            session_id=data.get("session_id", ""),
            cwd=data.get("cwd", ""),
            event=data.get("event", ""),
            status=data.get("status", ""),
            pid=int(pid) if isinstance(pid, (int, str)) and str(pid).isdigit() else None,
            tty=data.get("tty"),
            tool=data.get("tool"),
            tool_input=tool_input if isinstance(tool_input, dict) else None,
            tool_use_id=data.get("tool_use_id"),
            notification_type=data.get("notification_type"),
            message=data.get("message"),
            git_branch=data.get("git_branch"),
        )

    @property
    def should_sync_file(self) -> bool:
        return self.event in SYNC_EVENTS

    def determine_phase(self, now: Optional[datetime] = None) -> Optional[Phase]:
        """Map the hook's status to a phase. None means "no phase change"."""
        if self.event == "PreCompact" or self.status == "compacting":
            return Phase.compacting()
        if self.status == "waiting_for_approval":
            return Phase.waiting_for_approval(PermissionContext(
                tool_use_id=self.tool_use_id or "",
                tool_name=self.tool or "unknown",
                tool_input=self.tool_input,
                received_at=now or datetime.now(timezone.utc),
            ))
        if self.status == "waiting_for_input":
            return Phase.waiting_for_input()
        if self.status in ("processing", "running_tool", "starting"):
            return Phase.processing()
        if self.status == "idle":
            return Phase.idle()
        if self.status == "ended":
            return Phase.ended()
        return None


@dataclass
class FileUpdatePayload:
    session_id: str
    cwd: str
    messages: list[ChatMessage]
    all_messages: list[ChatMessage]
    is_incremental: bool
    completed_tool_ids: set[str] = field(default_factory=set)
    tool_results: dict[str, ToolResult] = field(default_factory=dict)
    structured_results: dict[str, dict] = field(default_factory=dict)
    conversation_info: Optional[ConversationInfo] = None
    active_todo: Optional[str] = None
    # task tool id -> nested tool calls read from the agent transcript
    subagent_tools: dict[str, list[SubagentToolCall]] = field(default_factory=dict)
    offset: int = 0


@dataclass
class ToolCompletionResult:
    status: ToolStatus
    result: Optional[str] = None
    structured_result: Optional[dict] = None

    @classmethod
    def from_parser(
        cls,
        parser_result: Optional[ToolResult],
        structured_result: Optional[dict] = None,
    ) -> "ToolCompletionResult":
        if parser_result is None:
            return cls(status=ToolStatus.SUCCESS, structured_result=structured_result)
        if parser_result.is_error:
            content = parser_result.display_text or ""
            status = ToolStatus.INTERRUPTED if "interrupted" in content.lower() else ToolStatus.ERROR
        else:
            status = ToolStatus.SUCCESS
        return cls(
            status=status,
            result=parser_result.display_text,
            structured_result=structured_result,
        )


# ----------------------------------------------------------------------
# Event taxonomy
# ----------------------------------------------------------------------

@dataclass
class HookReceived:
    hook: HookEvent


@dataclass
class PermissionApproved:
    session_id: str
    tool_use_id: str


@dataclass
class PermissionDenied:
    session_id: str
    tool_use_id: str
    reason: Optional[str] = None


@dataclass
class PermissionChannelFailed:
    session_id: str
    tool_use_id: str


@dataclass
class FileUpdated:
    payload: FileUpdatePayload


@dataclass
class InterruptDetected:
    session_id: str


@dataclass
class ClearDetected:
    session_id: str


@dataclass
class SessionEnded:
    session_id: str


@dataclass
class LoadHistory:
    session_id: str
    cwd: str


@dataclass
class HistoryLoaded:
    session_id: str
    messages: list[ChatMessage]
    completed_tool_ids: set[str] = field(default_factory=set)
    tool_results: dict[str, ToolResult] = field(default_factory=dict)
    structured_results: dict[str, dict] = field(default_factory=dict)
    conversation_info: Optional[ConversationInfo] = None
    active_todo: Optional[str] = None


@dataclass
class ToolCompleted:
    session_id: str
    tool_use_id: str
    result: ToolCompletionResult


@dataclass
class SubagentStarted:
    session_id: str
    task_tool_id: str
    description: Optional[str] = None
    agent_type: Optional[str] = None


@dataclass
class SubagentStopped:
    session_id: str
    task_tool_id: str


@dataclass
class SubagentToolExecuted:
    session_id: str
    tool: SubagentToolCall
    task_tool_id: Optional[str] = None


@dataclass
class SubagentToolCompleted:
    session_id: str
    tool_id: str
    status: ToolStatus


SessionEvent = Union[
    HookReceived,
    PermissionApproved,
    PermissionDenied,
    PermissionChannelFailed,
    FileUpdated,
    InterruptDetected,
    ClearDetected,
    SessionEnded,
    LoadHistory,
    HistoryLoaded,
    ToolCompleted,
    SubagentStarted,
    SubagentStopped,
    SubagentToolExecuted,
    SubagentToolCompleted,
]
