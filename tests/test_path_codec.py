"""Tests for path encoding."""

from pathlib import Path

from claude_session_monitor.utils.path_codec import (
    encode_path,
    folder_name,
    subagent_transcript_paths,
    transcript_path,
)


class TestEncodePath:
    def test_absolute_path(self):
        assert encode_path("/home/wiz/AI/LLM") == "-home-wiz-AI-LLM"

    def test_root_path(self):
        assert encode_path("/") == "-"

    def test_empty_path(self):
        assert encode_path("") == ""

    def test_dots_and_underscores(self):
        assert encode_path("/home/wiz/my.app/src_v2") == "-home-wiz-my-app-src-v2"


class TestTranscriptLocations:
    def test_transcript_path(self):
        path = transcript_path("/data/projects", "/home/wiz/app", "abc")
        assert path == Path("/data/projects/-home-wiz-app/abc.jsonl")

    def test_subagent_paths_newest_layout_first(self):
        paths = subagent_transcript_paths("/data/projects", "/home/wiz/app", "abc", "a1")
        assert paths == [
            Path("/data/projects/-home-wiz-app/abc/subagents/agent-a1.jsonl"),
            Path("/data/projects/-home-wiz-app/agent-a1.jsonl"),
        ]


class TestFolderName:
    def test_last_segment(self):
        assert folder_name("/home/wiz/AI/LLM") == "LLM"

    def test_trailing_slash(self):
        assert folder_name("/home/wiz/app/") == "app"

    def test_empty(self):
        assert folder_name("") == ""
