"""SQLite storage for indexed commands and file checkpoints."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import aiosqlite

from deja.storage.models import ExecutedCommand, IndexedFileState, Stats

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS commands (
        id INTEGER PRIMARY KEY,
        tool_use_id TEXT UNIQUE,
        command TEXT NOT NULL,
        description TEXT,
        cwd TEXT,
        stdout TEXT,
        stderr TEXT,
        is_error INTEGER DEFAULT 0,
        timestamp TEXT,
        session_id TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS indexed_files (
        file_path TEXT PRIMARY KEY,
        last_byte_offset INTEGER DEFAULT 0,
        last_modified INTEGER DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_commands_command ON commands(command)",
    "CREATE INDEX IF NOT EXISTS idx_commands_timestamp ON commands(timestamp)",
)

_FTS_SCHEMA = (
    "CREATE VIRTUAL TABLE IF NOT EXISTS commands_fts USING fts5(command, content='commands', content_rowid='id')",
    """
    CREATE TRIGGER IF NOT EXISTS commands_ai AFTER INSERT ON commands BEGIN
        INSERT INTO commands_fts(rowid, command) VALUES (new.id, new.command);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS commands_ad AFTER DELETE ON commands BEGIN
        INSERT INTO commands_fts(commands_fts, rowid, command) VALUES ('delete', old.id, old.command);
    END
    """,
)


async def open_db(db_path: str, fts: bool = True) -> aiosqlite.Connection:
    """Open the store at ``db_path`` and make sure the schema exists."""
    if db_path == MEMORY_DB:
        target = MEMORY_DB
    else:
        resolved = Path(db_path).expanduser().resolve()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        target = str(resolved)

    db = await aiosqlite.connect(target)
    db.row_factory = aiosqlite.Row
    if target != MEMORY_DB:
        await db.execute("PRAGMA journal_mode = WAL")

    for statement in _SCHEMA:
        await db.execute(statement)
    if fts:
        await _init_fts(db)
    await db.commit()
    logger.info("Database opened: %s", target)
    return db


async def _init_fts(db: aiosqlite.Connection) -> None:
    """Create the full-text index over command text if SQLite has FTS5."""
    existed = await has_fts(db)
    try:
        for statement in _FTS_SCHEMA:
            await db.execute(statement)
    except sqlite3.OperationalError as e:
        logger.warning("Full-text index unavailable, using substring relevance: %s", e)
        return
    if not existed:
        # Backfill rows stored before the index existed
        await db.execute("INSERT INTO commands_fts(commands_fts) VALUES ('rebuild')")


async def has_fts(db: aiosqlite.Connection) -> bool:
    cursor = await db.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'commands_fts'"
    )
    return await cursor.fetchone() is not None


async def insert_command(db: aiosqlite.Connection, cmd: ExecutedCommand) -> bool:
    """Insert a command; returns False when its tool_use_id is already stored.

    Does not commit, the caller owns the transaction.
    """
    cursor = await db.execute(
        """INSERT OR IGNORE INTO commands
           (tool_use_id, command, description, cwd, stdout, stderr, is_error, timestamp, session_id)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            cmd.tool_use_id,
            cmd.command,
            cmd.description,
            cmd.cwd,
            cmd.stdout,
            cmd.stderr,
            1 if cmd.is_error else 0,
            cmd.timestamp,
            cmd.session_id,
        ),
    )
    return cursor.rowcount > 0


async def get_indexed_file(db: aiosqlite.Connection, file_path: str) -> IndexedFileState | None:
    cursor = await db.execute(
        "SELECT file_path, last_byte_offset, last_modified FROM indexed_files WHERE file_path = ?",
        (file_path,),
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    return IndexedFileState(
        file_path=row["file_path"],
        last_byte_offset=row["last_byte_offset"],
        last_modified=row["last_modified"],
    )


async def update_indexed_file(
    db: aiosqlite.Connection,
    file_path: str,
    byte_offset: int,
    mtime: int,
) -> None:
    """Record how far ``file_path`` has been indexed. Does not commit."""
    await db.execute(
        """INSERT OR REPLACE INTO indexed_files (file_path, last_byte_offset, last_modified)
           VALUES (?, ?, ?)""",
        (file_path, byte_offset, mtime),
    )


async def fetch_commands(
    db: aiosqlite.Connection,
    where: str = "",
    params: tuple = (),
    limit: int | None = None,
) -> list[ExecutedCommand]:
    """Fetch command rows newest first, optionally filtered by a WHERE clause."""
    sql = "SELECT * FROM commands"
    if where:
        sql += f" WHERE {where}"
    sql += " ORDER BY timestamp DESC, id DESC"
    if limit is not None:
        sql += " LIMIT ?"
        params = (*params, limit)
    cursor = await db.execute(sql, params)
    rows = await cursor.fetchall()
    return [ExecutedCommand.from_row(row) for row in rows]


async def get_stats(db: aiosqlite.Connection) -> Stats:
    cursor = await db.execute("SELECT COUNT(*) FROM commands")
    (total_commands,) = await cursor.fetchone()
    cursor = await db.execute("SELECT COUNT(*) FROM indexed_files")
    (indexed_files,) = await cursor.fetchone()
    return Stats(total_commands=total_commands, indexed_files=indexed_files)
