"""Shared test fixtures."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from deja.storage.database import open_db


def iso_ago(**delta: float) -> str:
    """ISO timestamp (``Z`` suffix) the given timedelta before now."""
    then = datetime.now(timezone.utc) - timedelta(**delta)
    return then.strftime("%Y-%m-%dT%H:%M:%S.") + f"{then.microsecond // 1000:03d}Z"


class LogBuilder:
    """Build Claude Code session log lines."""

    def call(
        self,
        tool_use_id: str,
        command: str | None,
        description: str | None = None,
        cwd: str | None = "/projects/app",
        timestamp: str | None = "2024-01-01T10:00:00.000Z",
        name: str = "Bash",
    ) -> str:
        tool_input: dict = {}
        if command is not None:
            tool_input["command"] = command
        if description is not None:
            tool_input["description"] = description
        entry: dict = {
            "type": "assistant",
            "message": {
                "role": "assistant",
                "content": [{"type": "tool_use", "id": tool_use_id, "name": name, "input": tool_input}],
            },
        }
        if cwd is not None:
            entry["cwd"] = cwd
        if timestamp is not None:
            entry["timestamp"] = timestamp
        return json.dumps(entry)

    def result(
        self,
        tool_use_id: str,
        content="ok",
        is_error: bool = False,
        stdout: str | None = None,
        stderr: str | None = None,
    ) -> str:
        entry: dict = {
            "type": "user",
            "message": {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": tool_use_id, "content": content, "is_error": is_error}
                ],
            },
        }
        if stdout is not None or stderr is not None:
            entry["toolUseResult"] = {"stdout": stdout, "stderr": stderr, "interrupted": False}
        return json.dumps(entry)

    def pair(self, tool_use_id: str, command: str, **call_kwargs) -> list[str]:
        return [self.call(tool_use_id, command, **call_kwargs), self.result(tool_use_id)]


@pytest.fixture
def log() -> LogBuilder:
    return LogBuilder()


@pytest.fixture
def ago():
    return iso_ago


@pytest.fixture
def projects_dir(tmp_path):
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def write_session(projects_dir):
    """Write ``lines`` as ``<project>/<session>.jsonl`` and return the path."""

    def _write(lines: list[str], project: str = "-projects-app", session: str = "session-1"):
        project_dir = projects_dir / project
        project_dir.mkdir(exist_ok=True)
        path = project_dir / f"{session}.jsonl"
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest_asyncio.fixture
async def db():
    conn = await open_db(":memory:")
    yield conn
    await conn.close()

