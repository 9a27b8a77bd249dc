"""Build and reconcile the visible ChatItems of a session from transcript messages."""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from claude_session_monitor.types.chat import (
    ChatItem,
    ChatItemKind,
    SubagentToolCall,
    ToolCallInfo,
    ToolStatus,
)
from claude_session_monitor.types.messages import BlockType, ChatMessage, MessageBlock
from claude_session_monitor.types.sessions import SessionState, SubagentState, ToolTracker

logger = logging.getLogger(__name__)

_BLOCK_SUFFIX = {
    BlockType.TEXT: "text",
    BlockType.THINKING: "thinking",
    BlockType.INTERRUPTED: "interrupted",
}


def item_id(message: ChatMessage, block: MessageBlock, index: int) -> str:
    """Stable id of the item built from one block of a message.

    Tool calls keep their tool-use id so hook signals and transcript lines
    land on the same item.
    """
    if block.type == BlockType.TOOL_USE and block.tool_id:
        return block.tool_id
    return f"{message.id}-{_BLOCK_SUFFIX.get(block.type, block.type.value)}-{index}"


def create_chat_items(message: ChatMessage) -> list[ChatItem]:
    items = []
    for index, block in enumerate(message.content):
        new_id = item_id(message, block, index)
        if block.type == BlockType.TOOL_USE:
            items.append(ChatItem(
                id=new_id,
                kind=ChatItemKind.TOOL_CALL,
                timestamp=message.timestamp,
                tool=ToolCallInfo(name=block.tool_name, input=dict(block.tool_input)),
            ))
        elif block.type == BlockType.THINKING:
            items.append(ChatItem(new_id, ChatItemKind.THINKING, message.timestamp, block.text))
        elif block.type == BlockType.INTERRUPTED:
            items.append(ChatItem(new_id, ChatItemKind.INTERRUPTED, message.timestamp))
        elif block.text:
            kind = ChatItemKind.USER if message.is_user else ChatItemKind.ASSISTANT
            items.append(ChatItem(new_id, kind, message.timestamp, block.text))
    return items


def collect_valid_ids(messages: Iterable[ChatMessage]) -> set[str]:
    return {item.id for message in messages for item in create_chat_items(message)}


def apply_messages(session: SessionState, messages: Iterable[ChatMessage]) -> int:
    """Merge transcript messages into the session's items.

    Existing tool calls get name, input and timestamp refreshed while their
    status, result and nested tools are preserved. Items with an unseen id are
    appended. Returns how many items were added.
    """
    added = 0
    for message in messages:
        for item in create_chat_items(message):
            idx = session.index_of(item.id)
            if idx is None:
                session.chat_items.append(item)
                added += 1
                continue
            existing = session.chat_items[idx]
            if existing.is_tool_call and item.is_tool_call:
                session.chat_items[idx] = replace(
                    existing,
                    timestamp=item.timestamp,
                    tool=replace(existing.tool, name=item.tool.name, input=item.tool.input),
                )
    session.sort_items()
    return added


def ensure_tool_item(
    session: SessionState,
    tool_use_id: str,
    tool_name: str,
    tool_input: Optional[dict[str, Any]],
    now: datetime,
) -> ChatItem:
    """Return the tool-call item for an id, creating a placeholder if needed."""
    existing = session.find_item(tool_use_id)
    if existing is not None:
        return existing
    item = ChatItem(
        id=tool_use_id,
        kind=ChatItemKind.TOOL_CALL,
        timestamp=now,
        tool=ToolCallInfo(name=tool_name, input=dict(tool_input or {})),
    )
    session.chat_items.append(item)
    session.sort_items()
    return item


def update_tool_status(session: SessionState, tool_use_id: str, status: ToolStatus, **changes) -> bool:
    idx = session.index_of(tool_use_id)
    if idx is None or not session.chat_items[idx].is_tool_call:
        logger.warning(
            "No tool item %s in session %s for status %s",
            tool_use_id[:12], session.session_id[:8], status.value,
        )
        return False
    session.chat_items[idx] = session.chat_items[idx].with_tool(status=status, **changes)
    return True


def set_subagent_tools(session: SessionState, task_tool_id: str, tools: Iterable[SubagentToolCall]) -> bool:
    idx = session.index_of(task_tool_id)
    if idx is None or not session.chat_items[idx].is_tool_call:
        return False
    session.chat_items[idx] = session.chat_items[idx].with_tool(subagent_tools=tuple(tools))
    return True


def interrupt_running(session: SessionState) -> int:
    """Mark every running tool call interrupted."""
    count = 0
    for i, item in enumerate(session.chat_items):
        if item.is_tool_call and item.tool.status == ToolStatus.RUNNING:
            session.chat_items[i] = item.with_tool(status=ToolStatus.INTERRUPTED)
            count += 1
    return count


def reconcile(
    session: SessionState,
    valid_ids: set[str],
    now: datetime,
    grace_seconds: float,
) -> int:
    """Drop items that left the transcript after a clear.

    Items younger than the grace window survive so a fresh hook placeholder
    is not lost before its line is written. Tool and subagent tracking start
    over. Returns how many items were dropped.
    """
    cutoff = now - timedelta(seconds=grace_seconds)
    before = len(session.chat_items)
    session.chat_items = [
        item for item in session.chat_items
        if item.id in valid_ids or item.timestamp > cutoff
    ]
    session.sort_items()
    session.tool_tracker = ToolTracker()
    session.subagent_state = SubagentState()
    return before - len(session.chat_items)
