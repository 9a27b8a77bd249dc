"""Incremental reader of Claude Code transcripts, one cache per session."""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

import orjson

from claude_session_monitor.services.activity import derive_thinking_state
from claude_session_monitor.services.jsonl_parser import read_from_offset, stream_session_file
from claude_session_monitor.types.messages import (
    BlockType,
    ChatMessage,
    MessageType,
    ParsedMessage,
    ParseResult,
    SubagentToolInfo,
    ToolResult,
)
from claude_session_monitor.types.sessions import ConversationInfo
from claude_session_monitor.utils import path_codec

logger = logging.getLogger(__name__)

CLAUDE_PROJECTS_DIR = Path.home() / ".claude" / "projects"
CLAUDE_TODOS_DIR = Path.home() / ".claude" / "todos"


class TranscriptSource(Protocol):
    """What the session store needs from transcript ingestion."""

    def parse_incremental(self, session_id: str, cwd: str) -> ParseResult: ...

    def parse_full(self, session_id: str, cwd: str) -> ParseResult: ...

    def clear_session(self, session_id: str, cwd: str) -> None: ...

    def conversation_info(self, session_id: str) -> ConversationInfo: ...

    def active_todo(self, session_id: str) -> Optional[str]: ...

    def parse_subagent_tools(self, agent_id: str, session_id: str, cwd: str) -> list[SubagentToolInfo]: ...

    def transcript_path(self, session_id: str, cwd: str) -> Path: ...


@dataclass
class _SessionCache:
    offset: int = 0
    messages: list[ChatMessage] = field(default_factory=list)
    completed_tool_ids: set[str] = field(default_factory=set)
    tool_results: dict[str, ToolResult] = field(default_factory=dict)
    structured_results: dict[str, dict] = field(default_factory=dict)
    summary: Optional[str] = None

    def reset_scope(self):
        self.messages.clear()
        self.completed_tool_ids.clear()
        self.tool_results.clear()
        self.structured_results.clear()
        self.summary = None


class ConversationParser:
    """Reads appended transcript lines and keeps the in-scope conversation.

    Called from the main thread (debounced sync) and from history workers,
    so every cache access holds the lock.
    """

    def __init__(self, projects_root: str | Path | None = None, todos_dir: str | Path | None = None):
        self._projects_root = Path(projects_root).expanduser() if projects_root else CLAUDE_PROJECTS_DIR
        self._todos_dir = Path(todos_dir).expanduser() if todos_dir else CLAUDE_TODOS_DIR
        self._caches: dict[str, _SessionCache] = {}
        self._lock = threading.Lock()

    def transcript_path(self, session_id: str, cwd: str) -> Path:
        return path_codec.transcript_path(self._projects_root, cwd, session_id)

    def parse_incremental(self, session_id: str, cwd: str) -> ParseResult:
        """Consume lines appended since the previous call.

        ``clear_detected`` is set when the file shrank (it is re-read from
        the start) or a ``/clear`` command was read; in both cases only what
        follows is in scope and is returned as new.
        """
        path = self.transcript_path(session_id, cwd)
        with self._lock:
            cache = self._caches.setdefault(session_id, _SessionCache())
            try:
                size = path.stat().st_size
            except OSError:
                return self._result(cache, [], False, 0)

            clear_detected = False
            if size < cache.offset:
                logger.info(
                    "Transcript for %s shrank (%d < %d), re-reading",
                    session_id[:8], size, cache.offset,
                )
                cache.reset_scope()
                cache.offset = 0
                clear_detected = True

            new_messages = []
            lines_read, cleared = self._consume(path, cache, new_messages)
            return self._result(cache, new_messages, clear_detected or cleared, lines_read)

    def parse_full(self, session_id: str, cwd: str) -> ParseResult:
        """Re-read the whole transcript. Everything in scope is returned as new."""
        path = self.transcript_path(session_id, cwd)
        with self._lock:
            cache = _SessionCache()
            self._caches[session_id] = cache
            new_messages = []
            lines_read, _ = self._consume(path, cache, new_messages)
            return self._result(cache, new_messages, False, lines_read)

    def clear_session(self, session_id: str, cwd: str):
        with self._lock:
            self._caches.pop(session_id, None)

    def conversation_info(self, session_id: str) -> ConversationInfo:
        with self._lock:
            cache = self._caches.get(session_id)
            if cache is None:
                return ConversationInfo()
            return build_conversation_info(cache.messages, cache.summary)

    def active_todo(self, session_id: str) -> Optional[str]:
        """activeForm of the in-progress todo of a session, if any."""
        path = self._todos_dir / f"{session_id}-agent-{session_id}.json"
        try:
            todos = orjson.loads(path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, orjson.JSONDecodeError):
            logger.debug("Unreadable todo file %s", path, exc_info=True)
            return None

        if not isinstance(todos, list):
            return None
        for todo in todos:
            if isinstance(todo, dict) and todo.get("status") == "in_progress":
                return todo.get("activeForm") or todo.get("content") or None
        return None

    def parse_subagent_tools(self, agent_id: str, session_id: str, cwd: str) -> list[SubagentToolInfo]:
        """Tool calls made inside a delegated agent's own transcript."""
        for path in path_codec.subagent_transcript_paths(self._projects_root, cwd, session_id, agent_id):
            if not path.exists():
                continue
            tools: list[SubagentToolInfo] = []
            completed: set[str] = set()
            for msg in stream_session_file(path):
                for result in msg.tool_results:
                    completed.add(result.tool_use_id)
                for block in msg.blocks:
                    if block.type == BlockType.TOOL_USE and block.tool_id:
                        tools.append(SubagentToolInfo(
                            id=block.tool_id,
                            name=block.tool_name,
                            input=dict(block.tool_input),
                            is_completed=False,
                            timestamp=msg.timestamp,
                        ))
            for tool in tools:
                tool.is_completed = tool.id in completed
            return tools
        return []

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _consume(
        self, path: Path, cache: _SessionCache, new_messages: list[ChatMessage],
    ) -> tuple[int, bool]:
        """Read complete lines past the cached offset.

        Returns the number of lines read and whether a /clear was among them.
        """
        try:
            parsed, cache.offset = read_from_offset(path, cache.offset)
        except OSError:
            logger.debug("Failed to read %s", path, exc_info=True)
            return 0, False

        cleared = False
        for msg in parsed:
            if msg.is_clear_command:
                logger.info("/clear found in %s", path.name)
                cache.reset_scope()
                new_messages.clear()
                cleared = True
                continue
            self._absorb(cache, msg, new_messages)
        return len(parsed), cleared

    @staticmethod
    def _absorb(cache: _SessionCache, msg: ParsedMessage, new_messages: list[ChatMessage]):
        if msg.type == MessageType.SUMMARY:
            if msg.summary:
                cache.summary = msg.summary
            return

        for result in msg.tool_results:
            if not result.tool_use_id:
                continue
            cache.completed_tool_ids.add(result.tool_use_id)
            cache.tool_results[result.tool_use_id] = result
        if msg.structured_result is not None and msg.tool_results:
            cache.structured_results[msg.tool_results[0].tool_use_id] = msg.structured_result

        if msg.is_sidechain:
            return
        chat = msg.to_chat_message()
        if chat is not None:
            cache.messages.append(chat)
            new_messages.append(chat)

    @staticmethod
    def _result(
        cache: _SessionCache, new_messages: list[ChatMessage], clear_detected: bool, lines_read: int,
    ) -> ParseResult:
        return ParseResult(
            lines_read=lines_read,
            new_messages=list(new_messages),
            all_messages=list(cache.messages),
            clear_detected=clear_detected,
            completed_tool_ids=set(cache.completed_tool_ids),
            tool_results=dict(cache.tool_results),
            structured_results=dict(cache.structured_results),
            offset=cache.offset,
        )


def build_conversation_info(messages: list[ChatMessage], summary: Optional[str] = None) -> ConversationInfo:
    """Summarize the in-scope messages.

    The turn starts at the last user message carrying text; token counts are
    summed over the assistant messages after it.
    """
    first_user = None
    last_user_time = None
    turn_start_index = None
    for i, message in enumerate(messages):
        if not message.is_user:
            continue
        text = _first_text(message)
        if text is None:
            continue
        if first_user is None:
            first_user = text
        last_user_time = message.timestamp
        turn_start_index = i

    last_message = None
    last_role = None
    last_tool = None
    for message in reversed(messages):
        if not message.content:
            continue
        block = message.content[-1]
        if block.type == BlockType.TOOL_USE:
            last_message = block.tool_name
            last_role = "tool"
            last_tool = block.tool_name
        else:
            last_message = block.text or None
            last_role = message.role
        break

    input_tokens = output_tokens = cache_read = None
    last_text_output = None
    if turn_start_index is not None:
        for message in messages[turn_start_index + 1:]:
            if not message.is_assistant:
                continue
            if message.usage is not None:
                input_tokens = (input_tokens or 0) + message.usage.input_tokens
                output_tokens = (output_tokens or 0) + message.usage.output_tokens
                cache_read = (cache_read or 0) + message.usage.cache_read_input_tokens
            for block in message.content:
                if block.type == BlockType.TEXT and block.text:
                    last_text_output = block.text

    is_thinking, thinking_text = derive_thinking_state(messages)

    return ConversationInfo(
        summary=summary,
        last_message=last_message,
        last_message_role=last_role,
        last_tool_name=last_tool,
        first_user_message=first_user,
        last_user_message_time=last_user_time,
        turn_start_time=last_user_time,
        turn_input_tokens=input_tokens,
        turn_output_tokens=output_tokens,
        turn_cache_read_tokens=cache_read,
        is_thinking=is_thinking,
        last_thinking_text=thinking_text,
        last_text_output=last_text_output,
    )


def _first_text(message: ChatMessage) -> Optional[str]:
    for block in message.content:
        if block.type == BlockType.TEXT and block.text.strip():
            return block.text.strip()
    return None
