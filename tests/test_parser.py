"""Tests for deja.parser: pure logic, no I/O."""

from __future__ import annotations

import json

import pytest

from deja.parser import extract_commands, parse_jsonl_content, parse_line


class TestParseLine:
    @pytest.mark.parametrize(
        "line, expected",
        [
            ('{"type": "user"}', {"type": "user"}),
            ("not-json", None),
            ("", None),
            ("   \t  ", None),
            ("[1, 2, 3]", None),
            ('"just a string"', None),
        ],
        ids=["valid_json", "invalid_json", "empty", "whitespace", "array", "string"],
    )
    def test_parse_line(self, line, expected):
        assert parse_line(line) == expected


class TestParseJsonlContent:
    def test_simple_command_and_result(self, log):
        content = "\n".join(
            [
                log.call("tool-1", "ls -la", description="List files", cwd="/home/user"),
                log.result("tool-1", content="file1.txt\nfile2.txt"),
            ]
        )
        commands = parse_jsonl_content(content, "session-abc")

        assert len(commands) == 1
        cmd = commands[0]
        assert cmd.tool_use_id == "tool-1"
        assert cmd.command == "ls -la"
        assert cmd.description == "List files"
        assert cmd.cwd == "/home/user"
        assert cmd.stdout == "file1.txt\nfile2.txt"
        assert cmd.stderr is None
        assert cmd.is_error is False
        assert cmd.timestamp == "2024-01-01T10:00:00.000Z"
        assert cmd.session_id == "session-abc"

    def test_multiple_commands_in_order(self, log):
        content = "\n".join(log.pair("t1", "echo one") + log.pair("t2", "echo two") + log.pair("t3", "echo three"))
        commands = parse_jsonl_content(content)
        assert [c.command for c in commands] == ["echo one", "echo two", "echo three"]

    def test_error_result(self, log):
        content = "\n".join([log.call("t1", "false"), log.result("t1", content="exit 1", is_error=True)])
        (cmd,) = parse_jsonl_content(content)
        assert cmd.is_error is True

    def test_ignores_non_bash_tools(self, log):
        content = "\n".join([log.call("t1", "ls", name="Read"), log.result("t1")])
        assert parse_jsonl_content(content) == []

    def test_ignores_empty_command(self, log):
        content = "\n".join(
            [log.call("t1", ""), log.result("t1"), log.call("t2", None), log.result("t2")]
        )
        assert parse_jsonl_content(content) == []

    def test_malformed_lines_are_skipped(self, log):
        lines = ["{broken", *log.pair("t1", "echo a"), "not json at all", *log.pair("t2", "echo b"), '{"type":']
        commands = parse_jsonl_content("\n".join(lines))
        assert [c.command for c in commands] == ["echo a", "echo b"]

    def test_empty_input(self):
        assert parse_jsonl_content("") == []

    def test_unanswered_call_is_dropped(self, log):
        content = "\n".join([log.call("t1", "sleep 100"), *log.pair("t2", "echo done")])
        commands = parse_jsonl_content(content)
        assert [c.tool_use_id for c in commands] == ["t2"]

    def test_orphan_result_is_dropped(self, log):
        assert parse_jsonl_content(log.result("missing")) == []

    def test_result_before_call_does_not_match(self, log):
        content = "\n".join([log.result("t1"), log.call("t1", "ls")])
        assert parse_jsonl_content(content) == []

    def test_result_is_consumed_once(self, log):
        content = "\n".join([log.call("t1", "ls"), log.result("t1"), log.result("t1")])
        assert len(parse_jsonl_content(content)) == 1

    def test_interleaved_calls(self, log):
        content = "\n".join(
            [log.call("a", "make build"), log.call("b", "make test"), log.result("b"), log.result("a")]
        )
        commands = parse_jsonl_content(content)
        assert [c.command for c in commands] == ["make test", "make build"]

    def test_entry_without_message_is_skipped(self, log):
        content = "\n".join(['{"type": "assistant"}', '{"type": "user", "message": "text"}', *log.pair("t1", "pwd")])
        assert [c.command for c in parse_jsonl_content(content)] == ["pwd"]


class TestExtractCommands:
    def test_prefers_captured_stdout(self, log):
        entries = [
            json.loads(log.call("t1", "echo hi")),
            json.loads(log.result("t1", content="content output", stdout="captured stdout", stderr="warn")),
        ]
        (cmd,) = extract_commands(entries)
        assert cmd.stdout == "captured stdout"
        assert cmd.stderr == "warn"

    def test_falls_back_to_content(self, log):
        entries = [json.loads(log.call("t1", "echo hi")), json.loads(log.result("t1", content="content output"))]
        (cmd,) = extract_commands(entries)
        assert cmd.stdout == "content output"
        assert cmd.stderr is None

    def test_empty_captured_stdout_is_kept(self, log):
        entries = [json.loads(log.call("t1", "true")), json.loads(log.result("t1", content="x", stdout=""))]
        (cmd,) = extract_commands(entries)
        assert cmd.stdout == ""

    def test_string_tool_use_result_is_ignored(self, log):
        result = json.loads(log.result("t1", content="Error: boom", is_error=True))
        result["toolUseResult"] = "Error: boom"
        (cmd,) = extract_commands([json.loads(log.call("t1", "boom")), result])
        assert cmd.stdout == "Error: boom"
        assert cmd.is_error is True

    def test_block_list_content_is_flattened(self, log):
        content = [{"type": "text", "text": "line one"}, {"type": "image"}, {"type": "text", "text": "line two"}]
        entries = [json.loads(log.call("t1", "cat x")), json.loads(log.result("t1", content=content))]
        (cmd,) = extract_commands(entries)
        assert cmd.stdout == "line one\nline two"

    def test_missing_optional_fields(self, log):
        entries = [
            json.loads(log.call("t1", "ls", cwd=None, timestamp=None)),
            json.loads(log.result("t1")),
        ]
        (cmd,) = extract_commands(entries, session_id=None)
        assert cmd.description is None
        assert cmd.cwd is None
        assert cmd.timestamp is None
        assert cmd.session_id is None
