"""Extract Bash commands and their results from Claude Code session logs.

Session logs are JSONL: one event per line. An ``assistant`` event may carry
``tool_use`` blocks; the matching ``tool_result`` arrives later in a ``user``
event and is paired by ``tool_use_id``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from deja.storage.models import ExecutedCommand

logger = logging.getLogger(__name__)

SHELL_TOOL_NAME = "Bash"


def parse_line(line: str) -> dict[str, Any] | None:
    """Parse one JSONL line. Returns None for blank, malformed or non-object lines."""
    stripped = line.strip()
    if not stripped:
        return None
    try:
        entry = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    return entry if isinstance(entry, dict) else None


def _content_blocks(entry: dict[str, Any]) -> list[dict[str, Any]]:
    message = entry.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def _result_text(content: Any) -> str | None:
    """Flatten ``tool_result.content``, which is a string or a list of blocks."""
    if content is None or isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "\n".join(parts)
    return str(content)


def extract_commands(
    entries: Iterable[dict[str, Any]],
    session_id: str | None = None,
) -> list[ExecutedCommand]:
    """Pair Bash tool calls with their results, in input order."""
    commands: list[ExecutedCommand] = []
    pending: dict[str, ExecutedCommand] = {}
    orphans = 0

    for entry in entries:
        entry_type = entry.get("type")

        if entry_type == "assistant":
            for block in _content_blocks(entry):
                if block.get("type") != "tool_use" or block.get("name") != SHELL_TOOL_NAME:
                    continue
                tool_input = block.get("input")
                if not block.get("id") or not isinstance(tool_input, dict) or not tool_input.get("command"):
                    continue
                pending[block.get("id")] = ExecutedCommand(
                    tool_use_id=block.get("id"),
                    command=tool_input["command"],
                    description=tool_input.get("description"),
                    cwd=entry.get("cwd"),
                    timestamp=entry.get("timestamp"),
                    session_id=session_id,
                )

        elif entry_type == "user":
            captured = entry.get("toolUseResult")
            if not isinstance(captured, dict):
                captured = {}
            for block in _content_blocks(entry):
                if block.get("type") != "tool_result":
                    continue
                cmd = pending.pop(block.get("tool_use_id"), None)
                if cmd is None:
                    orphans += 1
                    continue
                stdout = captured.get("stdout")
                cmd.stdout = stdout if stdout is not None else _result_text(block.get("content"))
                cmd.stderr = captured.get("stderr")
                cmd.is_error = bool(block.get("is_error"))
                commands.append(cmd)

    if orphans or pending:
        logger.debug(
            "Session %s: dropped %d orphan result(s) and %d unanswered call(s)",
            session_id,
            orphans,
            len(pending),
        )
    return commands


def parse_jsonl_content(content: str, session_id: str | None = None) -> list[ExecutedCommand]:
    """Parse raw JSONL text, skipping malformed lines."""
    entries = (parse_line(line) for line in content.split("\n"))
    return extract_commands((e for e in entries if e is not None), session_id)
