"""Message-level types for parsed JSONL transcript data."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class MessageType(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    SUMMARY = "summary"
    FILE_HISTORY = "file-history-snapshot"
    QUEUE_OP = "queue-operation"


class BlockType(str, Enum):
    TEXT = "text"
    TOOL_USE = "tool_use"
    THINKING = "thinking"
    INTERRUPTED = "interrupted"


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0

    @property
    def total(self) -> int:
        return (self.input_tokens + self.output_tokens +
                self.cache_read_input_tokens + self.cache_creation_input_tokens)


@dataclass
class MessageBlock:
    type: BlockType
    text: str = ""
    tool_id: str = ""
    tool_name: str = ""
    tool_input: dict = field(default_factory=dict)


@dataclass
class ToolResult:
    tool_use_id: str
    content: Any  # str or list
    is_error: bool = False
    stdout: str = ""
    stderr: str = ""

    @property
    def display_text(self) -> Optional[str]:
        """Best human-readable result: stdout, then stderr, then content."""
        if self.stdout:
            return self.stdout
        if self.stderr:
            return self.stderr
        if isinstance(self.content, str) and self.content:
            return self.content
        if isinstance(self.content, list):
            parts = [
                item.get("text", "") for item in self.content
                if isinstance(item, dict) and item.get("type") == "text"
            ]
            text = "\n".join(p for p in parts if p)
            return text or None
        return None


@dataclass
class ParsedMessage:
    """One raw transcript line."""
    uuid: str
    parent_uuid: Optional[str]
    type: MessageType
    timestamp: datetime
    role: str = ""
    blocks: list[MessageBlock] = field(default_factory=list)
    usage: Optional[TokenUsage] = None
    model: str = ""
    cwd: str = ""
    agent_id: str = ""
    is_sidechain: bool = False
    is_meta: bool = False
    is_compact_summary: bool = False
    tool_results: list[ToolResult] = field(default_factory=list)
    structured_result: Optional[dict] = None
    summary: str = ""
    command_name: str = ""

    @property
    def is_clear_command(self) -> bool:
        return self.command_name == "/clear"

    def to_chat_message(self) -> Optional["ChatMessage"]:
        """Visible blocks of a user/assistant line, or None when it has none."""
        if self.type not in (MessageType.USER, MessageType.ASSISTANT) or self.is_meta:
            return None
        if not self.blocks:
            return None
        return ChatMessage(
            id=self.uuid,
            role=self.role or self.type.value,
            timestamp=self.timestamp,
            content=list(self.blocks),
            usage=self.usage,
        )


@dataclass
class ChatMessage:
    """A structured user/assistant message as consumed by the coordinator."""
    id: str
    role: str
    timestamp: datetime
    content: list[MessageBlock] = field(default_factory=list)
    usage: Optional[TokenUsage] = None

    @property
    def is_user(self) -> bool:
        return self.role == "user"

    @property
    def is_assistant(self) -> bool:
        return self.role == "assistant"


@dataclass
class SubagentToolInfo:
    id: str
    name: str
    input: dict
    is_completed: bool
    timestamp: Optional[datetime] = None


@dataclass
class ParseResult:
    """Output of one ingestion call.

    ``new_messages`` holds only what was appended since the previous call
    (everything in scope for a full parse); ``all_messages`` holds every
    message currently in scope.
    """
    new_messages: list[ChatMessage] = field(default_factory=list)
    all_messages: list[ChatMessage] = field(default_factory=list)
    clear_detected: bool = False
    completed_tool_ids: set[str] = field(default_factory=set)
    tool_results: dict[str, ToolResult] = field(default_factory=dict)
    structured_results: dict[str, dict] = field(default_factory=dict)
    offset: int = 0
    # Complete lines read by this call, visible or not
    lines_read: int = 0
