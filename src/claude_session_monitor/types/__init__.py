"""Type definitions for Claude Session Monitor."""

from claude_session_monitor.types.phases import Phase, PhaseKind, PermissionContext
from claude_session_monitor.types.chat import (
    ChatItem,
    ChatItemKind,
    SubagentToolCall,
    ToolCallInfo,
    ToolStatus,
)
from claude_session_monitor.types.messages import (
    BlockType,
    ChatMessage,
    MessageBlock,
    MessageType,
    ParsedMessage,
    ParseResult,
    SubagentToolInfo,
    TokenUsage,
    ToolResult,
)
from claude_session_monitor.types.sessions import (
    ConversationInfo,
    SessionState,
    SubagentState,
    TaskContext,
    ToolInProgress,
    ToolTracker,
)
from claude_session_monitor.types.events import (
    FileUpdatePayload,
    HookEvent,
    SessionEvent,
    ToolCompletionResult,
)

__all__ = [
    "Phase",
    "PhaseKind",
    "PermissionContext",
    "ChatItem",
    "ChatItemKind",
    "SubagentToolCall",
    "ToolCallInfo",
    "ToolStatus",
    "BlockType",
    "ChatMessage",
    "MessageBlock",
    "MessageType",
    "ParsedMessage",
    "ParseResult",
    "SubagentToolInfo",
    "TokenUsage",
    "ToolResult",
    "ConversationInfo",
    "SessionState",
    "SubagentState",
    "TaskContext",
    "ToolInProgress",
    "ToolTracker",
    "FileUpdatePayload",
    "HookEvent",
    "SessionEvent",
    "ToolCompletionResult",
]
