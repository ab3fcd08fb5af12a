"""Data models for deja."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ExecutedCommand:
    """One shell invocation extracted from a session log."""

    tool_use_id: str = ""
    command: str = ""
    description: str | None = None
    cwd: str | None = None
    stdout: str | None = None
    stderr: str | None = None
    is_error: bool = False
    timestamp: str | None = None
    session_id: str | None = None
    id: int | None = None

    @classmethod
    def from_row(cls, row) -> ExecutedCommand:
        return cls(
            id=row["id"],
            tool_use_id=row["tool_use_id"],
            command=row["command"],
            description=row["description"],
            cwd=row["cwd"],
            stdout=row["stdout"],
            stderr=row["stderr"],
            is_error=bool(row["is_error"]),
            timestamp=row["timestamp"],
            session_id=row["session_id"],
        )


@dataclass
class AggregatedCommand:
    """A distinct command collapsed across its executions.

    ``latest`` is the most recent execution and supplies the display fields.
    """

    latest: ExecutedCommand
    frequency: int = 1
    score: float = 0.0

    @property
    def command(self) -> str:
        return self.latest.command

    @property
    def description(self) -> str | None:
        return self.latest.description

    @property
    def cwd(self) -> str | None:
        return self.latest.cwd

    @property
    def is_error(self) -> bool:
        return self.latest.is_error

    @property
    def timestamp(self) -> str | None:
        return self.latest.timestamp

    @property
    def session_id(self) -> str | None:
        return self.latest.session_id


@dataclass
class IndexedFileState:
    """Ingestion checkpoint for one session log file."""

    file_path: str
    last_byte_offset: int = 0
    last_modified: int = 0


@dataclass
class SyncResult:
    files_scanned: int = 0
    new_commands: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class Stats:
    total_commands: int = 0
    indexed_files: int = 0
