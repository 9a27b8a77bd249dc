"""Streaming JSONL parser for Claude Code transcript files."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import orjson

from claude_session_monitor.types.messages import (
    BlockType,
    MessageBlock,
    MessageType,
    ParsedMessage,
    TokenUsage,
    ToolResult,
)

logger = logging.getLogger(__name__)

# Max size for a single JSONL line (10MB)
MAX_LINE_SIZE = 10 * 1024 * 1024

INTERRUPT_PREFIX = "[Request interrupted by user"
_COMMAND_PREFIXES = ("<command-name>", "<command-message>", "<local-command-stdout>", "<local-command-stderr>")


def stream_session_file(file_path: str | Path) -> Iterator[ParsedMessage]:
    """Stream-parse a JSONL transcript, yielding ParsedMessage objects.

    Malformed lines are logged and skipped.
    Lines exceeding MAX_LINE_SIZE are skipped with a warning.
    """
    path = Path(file_path)
    if not path.exists():
        logger.warning("Transcript not found: %s", path)
        return

    line_num = 0
    with open(path, "rb") as f:
        for line in f:
            line_num += 1
            msg = _parse_line(line, line_num, path.name)
            if msg is not None:
                yield msg


def read_from_offset(file_path: str | Path, byte_offset: int) -> tuple[list[ParsedMessage], int]:
    """Parse complete lines appended after a byte offset.

    Returns the parsed messages and the offset just past the last complete
    line, so a line still being written is picked up by the next call.
    """
    path = Path(file_path)
    if not path.exists():
        return [], byte_offset

    with open(path, "rb") as f:
        f.seek(byte_offset)
        data = f.read()

    end = data.rfind(b"\n")
    if end < 0:
        return [], byte_offset

    messages = []
    for line in data[:end].split(b"\n"):
        msg = _parse_line(line, 0, path.name)
        if msg is not None:
            messages.append(msg)
    return messages, byte_offset + end + 1


def _parse_line(line: bytes, line_num: int, file_name: str) -> ParsedMessage | None:
    line = line.strip()
    if not line:
        return None

    if len(line) > MAX_LINE_SIZE:
        logger.warning(
            "Line %d in %s exceeds %dMB, skipping",
            line_num, file_name, MAX_LINE_SIZE // (1024 * 1024),
        )
        return None

    try:
        raw = orjson.loads(line)
    except orjson.JSONDecodeError as e:
        logger.debug("Malformed JSON at line %d in %s: %s", line_num, file_name, e)
        return None

    if not isinstance(raw, dict):
        return None
    return parse_raw_message(raw)


def parse_raw_message(raw: dict) -> ParsedMessage | None:
    """Parse a raw JSON dict into a ParsedMessage."""
    type_str = raw.get("type", "")
    try:
        msg_type = MessageType(type_str)
    except ValueError:
        msg_type = MessageType.SYSTEM

    # Summary lines carry no uuid, only leafUuid
    if msg_type == MessageType.SUMMARY:
        return ParsedMessage(
            uuid=raw.get("uuid") or raw.get("leafUuid", ""),
            parent_uuid=None,
            type=msg_type,
            timestamp=_parse_timestamp(raw.get("timestamp", "")),
            summary=raw.get("summary", "") or "",
        )

    uuid = raw.get("uuid", "")
    if not uuid:
        return None

    timestamp = _parse_timestamp(raw.get("timestamp", ""))

    message = raw.get("message", {})
    if not isinstance(message, dict):
        message = {}

    role = message.get("role", "")
    content = message.get("content", "")

    usage = None
    raw_usage = message.get("usage")
    if isinstance(raw_usage, dict):
        usage = TokenUsage(
            input_tokens=raw_usage.get("input_tokens", 0) or 0,
            output_tokens=raw_usage.get("output_tokens", 0) or 0,
            cache_read_input_tokens=raw_usage.get("cache_read_input_tokens", 0) or 0,
            cache_creation_input_tokens=raw_usage.get("cache_creation_input_tokens", 0) or 0,
        )

    blocks: list[MessageBlock] = []
    tool_results: list[ToolResult] = []
    command_name = ""

    if isinstance(content, str):
        text = content.strip()
        if text.startswith(_COMMAND_PREFIXES):
            command_name = _extract_command_name(text)
        elif text.startswith(INTERRUPT_PREFIX):
            blocks.append(MessageBlock(type=BlockType.INTERRUPTED))
        elif text:
            blocks.append(MessageBlock(type=BlockType.TEXT, text=content))
    elif isinstance(content, list):
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                text = block.get("text", "") or ""
                if text.strip().startswith(INTERRUPT_PREFIX):
                    blocks.append(MessageBlock(type=BlockType.INTERRUPTED))
                elif text.strip():
                    blocks.append(MessageBlock(type=BlockType.TEXT, text=text))
            elif block_type == "thinking":
                blocks.append(MessageBlock(type=BlockType.THINKING, text=block.get("thinking", "") or ""))
            elif block_type == "tool_use":
                tool_input = block.get("input", {})
                blocks.append(MessageBlock(
                    type=BlockType.TOOL_USE,
                    tool_id=block.get("id", ""),
                    tool_name=block.get("name", ""),
                    tool_input=tool_input if isinstance(tool_input, dict) else {},
                ))
            elif block_type == "tool_result":
                tool_results.append(ToolResult(
                    tool_use_id=block.get("tool_use_id", ""),
                    content=block.get("content", ""),
                    is_error=bool(block.get("is_error", False)),
                ))

    structured = raw.get("toolUseResult")
    structured_result = structured if isinstance(structured, dict) else None
    if structured_result and tool_results:
        tool_results[0].stdout = structured_result.get("stdout", "") or ""
        tool_results[0].stderr = structured_result.get("stderr", "") or ""

    return ParsedMessage(
        uuid=uuid,
        parent_uuid=raw.get("parentUuid"),
        type=msg_type,
        timestamp=timestamp,
        role=role,
        blocks=blocks,
        usage=usage,
        model=message.get("model", "") or "",
        cwd=raw.get("cwd", "") or "",
        agent_id=raw.get("agentId", "") or "",
        is_sidechain=bool(raw.get("isSidechain", False)),
        is_meta=bool(raw.get("isMeta", False)),
        is_compact_summary=bool(raw.get("isCompactSummary", False)),
        tool_results=tool_results,
        structured_result=structured_result,
        command_name=command_name,
    )


def _extract_command_name(text: str) -> str:
    start = text.find("<command-name>")
    if start < 0:
        return ""
    start += len("<command-name>")
    end = text.find("</command-name>", start)
    return text[start:end].strip() if end > start else ""


def _parse_timestamp(ts_value) -> datetime:
    """Parse a timestamp from various formats into an aware UTC datetime."""
    if isinstance(ts_value, (int, float)):
        seconds = ts_value / 1000 if ts_value > 1e12 else ts_value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(ts_value, str) and ts_value:
        try:
            # ISO 8601 format: "2026-02-13T12:00:00.000Z"
            parsed = datetime.fromisoformat(ts_value.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except ValueError:
            pass
        try:
            return datetime.fromtimestamp(float(ts_value), tz=timezone.utc)
        except (ValueError, OSError):
            pass
    return datetime.now(timezone.utc)
