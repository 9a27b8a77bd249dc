"""Tests for claude_session_monitor.services.jsonl_parser."""

import json
from datetime import timezone

from claude_session_monitor.services.jsonl_parser import (
    parse_raw_message,
    read_from_offset,
    stream_session_file,
)
from claude_session_monitor.types.messages import BlockType, MessageType

from helpers import jsonl_line, write_lines


def _raw(uuid="u1", msg_type="user", content="Hello", **extra):
    return json.loads(jsonl_line(uuid, msg_type, content, **extra))


class TestParseRawMessage:
    def test_plain_user_text(self):
        msg = parse_raw_message(_raw(content="Fix the bug"))
        assert msg.type == MessageType.USER
        assert msg.blocks[0].type == BlockType.TEXT
        assert msg.blocks[0].text == "Fix the bug"
        assert msg.timestamp.tzinfo == timezone.utc

    def test_assistant_blocks(self):
        msg = parse_raw_message(_raw("a1", "assistant", [
            {"type": "thinking", "thinking": "Let me look"},
            {"type": "text", "text": "Looking now"},
            {"type": "tool_use", "id": "toolu_1", "name": "Read", "input": {"file_path": "/x"}},
        ]))
        kinds = [b.type for b in msg.blocks]
        assert kinds == [BlockType.THINKING, BlockType.TEXT, BlockType.TOOL_USE]
        assert msg.blocks[0].text == "Let me look"
        assert msg.blocks[2].tool_id == "toolu_1"
        assert msg.blocks[2].tool_input == {"file_path": "/x"}

    def test_interrupt_marker(self):
        msg = parse_raw_message(_raw(content="[Request interrupted by user for tool use]"))
        assert [b.type for b in msg.blocks] == [BlockType.INTERRUPTED]

    def test_interrupt_marker_in_text_block(self):
        msg = parse_raw_message(_raw(content=[{"type": "text", "text": "[Request interrupted by user]"}]))
        assert [b.type for b in msg.blocks] == [BlockType.INTERRUPTED]

    def test_clear_command(self):
        msg = parse_raw_message(_raw(
            content="<command-name>/clear</command-name>\n<command-message>clear</command-message>",
        ))
        assert msg.is_clear_command
        assert msg.blocks == []
        assert msg.to_chat_message() is None

    def test_tool_result_with_structured_payload(self):
        msg = parse_raw_message(_raw(
            content=[{"type": "tool_result", "tool_use_id": "toolu_1", "content": "ok"}],
            toolUseResult={"stdout": "file.txt", "stderr": "", "agentId": "abc"},
        ))
        assert msg.tool_results[0].tool_use_id == "toolu_1"
        assert msg.tool_results[0].display_text == "file.txt"
        assert msg.structured_result["agentId"] == "abc"
        # Result-only lines carry nothing visible
        assert msg.to_chat_message() is None

    def test_error_result(self):
        msg = parse_raw_message(_raw(
            content=[{"type": "tool_result", "tool_use_id": "t", "content": "boom", "is_error": True}],
        ))
        assert msg.tool_results[0].is_error

    def test_summary_line(self):
        msg = parse_raw_message({"type": "summary", "summary": "Refactor parser", "leafUuid": "leaf"})
        assert msg.type == MessageType.SUMMARY
        assert msg.summary == "Refactor parser"

    def test_missing_uuid_skipped(self):
        assert parse_raw_message({"type": "user", "message": {"content": "x"}}) is None

    def test_meta_lines_are_not_chat(self):
        msg = parse_raw_message(_raw(content="caveat", isMeta=True))
        assert msg.to_chat_message() is None

    def test_usage(self):
        msg = parse_raw_message({
            "uuid": "a1", "type": "assistant", "timestamp": "2026-02-13T10:00:00Z",
            "message": {"role": "assistant", "content": [{"type": "text", "text": "x"}],
                        "usage": {"input_tokens": 10, "output_tokens": 5, "cache_read_input_tokens": 3}},
        })
        assert msg.usage.input_tokens == 10
        assert msg.usage.cache_read_input_tokens == 3


class TestReadFromOffset:
    def test_only_complete_lines_consumed(self, tmp_path):
        path = tmp_path / "s.jsonl"
        write_lines(path, [jsonl_line("u1")])
        with open(path, "a") as f:
            f.write(jsonl_line("u2")[:20])

        messages, offset = read_from_offset(path, 0)
        assert [m.uuid for m in messages] == ["u1"]

        with open(path, "a") as f:
            f.write(jsonl_line("u2")[20:] + "\n")
        messages, offset2 = read_from_offset(path, offset)
        assert [m.uuid for m in messages] == ["u2"]
        assert offset2 == path.stat().st_size

    def test_missing_file(self, tmp_path):
        assert read_from_offset(tmp_path / "nope.jsonl", 7) == ([], 7)

    def test_malformed_line_skipped(self, tmp_path):
        path = tmp_path / "s.jsonl"
        write_lines(path, [jsonl_line("u1"), "{not json", jsonl_line("u2")])
        messages, _ = read_from_offset(path, 0)
        assert [m.uuid for m in messages] == ["u1", "u2"]


def test_stream_session_file(tmp_path):
    path = tmp_path / "s.jsonl"
    write_lines(path, [jsonl_line("u1"), "", jsonl_line("a1", "assistant", [{"type": "text", "text": "hi"}])])
    assert [m.uuid for m in stream_session_file(path)] == ["u1", "a1"]
