"""Incremental indexing of Claude Code session logs into the store."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from deja.parser import parse_jsonl_content
from deja.storage.database import get_indexed_file, insert_command, update_indexed_file
from deja.storage.models import SyncResult

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".jsonl"


def find_log_files(source_root: Path, extension: str = DEFAULT_EXTENSION) -> list[Path]:
    """List log files one level down, inside each project directory.

    Files placed directly in ``source_root`` are not session logs and are ignored.
    """
    files: list[Path] = []
    for project_dir in sorted(source_root.iterdir()):
        try:
            if not project_dir.is_dir():
                continue
            files.extend(
                sorted(p for p in project_dir.iterdir() if p.name.endswith(extension) and p.is_file())
            )
        except OSError as e:
            logger.warning("Skipping unreadable project directory %s: %s", project_dir, e)
    return files


def session_id_for(path: Path, extension: str = DEFAULT_EXTENSION) -> str:
    return path.name.removesuffix(extension)


def locate_start_line(lines: list[bytes], offset: int) -> int:
    """Index of the raw line containing byte ``offset`` of the file.

    ``lines`` are the file's bytes split on ``b"\\n"``, so any ``\\r`` is
    still counted. Returns ``len(lines)`` when the offset is past the end.
    """
    if offset <= 0:
        return 0
    byte_pos = 0
    for i, line in enumerate(lines):
        line_bytes = len(line) + 1
        if byte_pos + line_bytes > offset:
            return i
        byte_pos += line_bytes
    return len(lines)


async def index_file(
    db: aiosqlite.Connection,
    path: Path,
    start_offset: int,
    extension: str = DEFAULT_EXTENSION,
) -> int:
    """Parse ``path`` from ``start_offset`` and store new commands. Does not commit.

    Lines are decoded one at a time with replacement, so an invalid or
    half-written UTF-8 sequence only spoils its own line.
    """
    lines = path.read_bytes().split(b"\n")
    start_line = locate_start_line(lines, start_offset)
    content = "\n".join(line.decode("utf-8", errors="replace") for line in lines[start_line:])

    inserted = 0
    for cmd in parse_jsonl_content(content, session_id_for(path, extension)):
        if await insert_command(db, cmd):
            inserted += 1
    return inserted


async def sync(
    db: aiosqlite.Connection,
    source_root: Path | str,
    *,
    force: bool = False,
    extension: str = DEFAULT_EXTENSION,
) -> SyncResult:
    """Index new content from every session log under ``source_root``."""
    root = Path(source_root).expanduser()
    result = SyncResult()

    if not root.is_dir():
        result.errors.append(f"Claude projects directory not found: {root}")
        return result

    try:
        files = find_log_files(root, extension)
    except OSError as e:
        result.errors.append(f"Cannot read Claude projects directory {root}: {e}")
        return result

    for path in files:
        result.files_scanned += 1
        file_path = str(path)

        try:
            stat = path.stat()
            indexed = await get_indexed_file(db, file_path)

            if not force and indexed is not None and indexed.last_byte_offset >= stat.st_size:
                logger.debug("Already indexed: %s", file_path)
                continue

            start_offset = 0 if force or indexed is None else indexed.last_byte_offset
            result.new_commands += await index_file(db, path, start_offset, extension)
            await update_indexed_file(db, file_path, stat.st_size, int(stat.st_mtime * 1000))
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error("Failed to index %s: %s", file_path, e)
            result.errors.append(f"Error processing {file_path}: {e}")

    logger.info(
        "Sync finished: %d file(s) scanned, %d new command(s), %d error(s)",
        result.files_scanned,
        result.new_commands,
        len(result.errors),
    )
    return result
