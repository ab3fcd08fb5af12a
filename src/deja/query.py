"""Search and list queries over the indexed command history.

Each retrieval mode has a plain variant returning individual executions,
newest first, and a frecency variant returning one ``AggregatedCommand`` per
distinct command text, ranked by ``frecency_score`` (optionally weighted by
text relevance).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import aiosqlite

from deja.frecency import frecency_score
from deja.indexer import DEFAULT_EXTENSION, sync
from deja.relevance import RelevanceScorer, select_relevance
from deja.storage.database import fetch_commands
from deja.storage.models import AggregatedCommand, ExecutedCommand, SyncResult

logger = logging.getLogger(__name__)

SORT_MODES = ("frecency", "time")
DEFAULT_LIST_LIMIT = 20

# Relevance scales frecency by a factor in [MIN, MIN + SPAN]
RELEVANCE_MIN = 0.5
RELEVANCE_SPAN = 1.0


def compile_pattern(pattern: str, use_regex: bool = False) -> re.Pattern[str]:
    """Compile a case-insensitive matcher; an invalid regex is matched literally."""
    if use_regex:
        try:
            return re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            logger.warning("Invalid regex %r (%s), matching it literally", pattern, e)
    return re.compile(re.escape(pattern), re.IGNORECASE)


def _like_pattern(pattern: str) -> str:
    escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def _matching_commands(
    db: aiosqlite.Connection,
    pattern: str,
    use_regex: bool,
    cwd: str | None,
    compiled: re.Pattern[str] | None = None,
) -> list[ExecutedCommand]:
    clauses: list[str] = []
    params: list[str] = []
    if not use_regex:
        clauses.append("command LIKE ? ESCAPE '\\'")
        params.append(_like_pattern(pattern))
    if cwd:
        clauses.append("cwd = ?")
        params.append(cwd)

    rows = await fetch_commands(db, " AND ".join(clauses), tuple(params))
    if use_regex:
        if compiled is None:
            compiled = compile_pattern(pattern, use_regex=True)
        rows = [row for row in rows if compiled.search(row.command)]
    return rows


def aggregate(rows: list[ExecutedCommand], now: datetime | None = None) -> list[AggregatedCommand]:
    """Group rows by command text. ``rows`` must be ordered newest first."""
    groups: dict[str, AggregatedCommand] = {}
    for row in rows:
        group = groups.get(row.command)
        if group is None:
            groups[row.command] = AggregatedCommand(latest=row)
        else:
            group.frequency += 1

    results = list(groups.values())
    for group in results:
        group.score = frecency_score(group.frequency, group.timestamp, now)
    return results


def blend_relevance(candidates: list[AggregatedCommand], relevance: dict[str, float]) -> None:
    """Scale each candidate's score by its min-max normalized relevance.

    Commands missing from ``relevance`` count as the least relevant.
    """
    if not candidates:
        return
    values = [relevance.get(c.command, 0.0) for c in candidates]
    low = min(values)
    spread = (max(values) - low) or 1.0
    for candidate, value in zip(candidates, values):
        normalized = (value - low) / spread
        candidate.score *= RELEVANCE_MIN + RELEVANCE_SPAN * normalized


def _rank(candidates: list[AggregatedCommand]) -> list[AggregatedCommand]:
    # Stable: equal scores keep most-recent-first order
    return sorted(candidates, key=lambda c: c.score, reverse=True)


async def search_commands(
    db: aiosqlite.Connection,
    pattern: str,
    *,
    use_regex: bool = False,
    cwd: str | None = None,
    limit: int | None = None,
    compiled: re.Pattern[str] | None = None,
) -> list[ExecutedCommand]:
    rows = await _matching_commands(db, pattern, use_regex, cwd, compiled)
    return rows[:limit] if limit is not None else rows


async def search_commands_with_frecency(
    db: aiosqlite.Connection,
    pattern: str,
    *,
    use_regex: bool = False,
    cwd: str | None = None,
    relevance: RelevanceScorer | None = None,
    now: datetime | None = None,
    compiled: re.Pattern[str] | None = None,
) -> list[AggregatedCommand]:
    """All matching commands grouped and ranked; the caller truncates for display.

    ``compiled`` is an already compiled regex for ``pattern``, if the caller has one.
    """
    rows = await _matching_commands(db, pattern, use_regex, cwd, compiled)
    candidates = aggregate(rows, now)
    if relevance is not None and candidates:
        scores = await relevance.score(db, pattern, [c.command for c in candidates])
        blend_relevance(candidates, scores)
    return _rank(candidates)


async def list_commands(
    db: aiosqlite.Connection,
    *,
    limit: int = DEFAULT_LIST_LIMIT,
    cwd: str | None = None,
) -> list[ExecutedCommand]:
    if cwd:
        return await fetch_commands(db, "cwd = ?", (cwd,), limit=limit)
    return await fetch_commands(db, limit=limit)


async def list_commands_with_frecency(
    db: aiosqlite.Connection,
    *,
    limit: int = DEFAULT_LIST_LIMIT,
    cwd: str | None = None,
    now: datetime | None = None,
) -> list[AggregatedCommand]:
    rows = await fetch_commands(db, "cwd = ?", (cwd,)) if cwd else await fetch_commands(db)
    return _rank(aggregate(rows, now))[:limit]


@dataclass
class QueryOptions:
    """Options shared by ``search`` and ``recent``."""

    cwd: str | None = None
    limit: int | None = None
    sort: str = "frecency"
    use_regex: bool = False
    no_sync: bool = False
    source_root: Path | None = None
    extension: str = DEFAULT_EXTENSION
    relevance: str = "auto"


@dataclass
class QueryResult:
    """Ordered results plus the number of matches before truncation."""

    results: list[ExecutedCommand] | list[AggregatedCommand] = field(default_factory=list)
    total: int = 0
    sort: str = "frecency"
    pattern: re.Pattern[str] | None = None
    sync: SyncResult | None = None

    @property
    def frecency(self) -> bool:
        return self.sort == "frecency"


async def _auto_sync(db: aiosqlite.Connection, options: QueryOptions) -> SyncResult | None:
    if options.no_sync or options.source_root is None:
        return None
    result = await sync(db, options.source_root, extension=options.extension)
    for error in result.errors:
        logger.warning("Auto-sync: %s", error)
    return result


def _check_sort(sort: str) -> None:
    if sort not in SORT_MODES:
        raise ValueError(f"Unknown sort mode: {sort} (expected one of {', '.join(SORT_MODES)})")


async def search(db: aiosqlite.Connection, pattern: str, options: QueryOptions) -> QueryResult:
    """Sync (unless disabled), then search. ``total`` counts all matches."""
    _check_sort(options.sort)
    synced = await _auto_sync(db, options)
    compiled = compile_pattern(pattern, options.use_regex)

    results: list
    if options.sort == "frecency":
        scorer = await select_relevance(db, options.relevance, compiled if options.use_regex else None)
        results = await search_commands_with_frecency(
            db,
            pattern,
            use_regex=options.use_regex,
            cwd=options.cwd,
            relevance=scorer,
            compiled=compiled,
        )
    else:
        results = await search_commands(
            db, pattern, use_regex=options.use_regex, cwd=options.cwd, compiled=compiled
        )

    total = len(results)
    if options.limit is not None:
        results = results[: options.limit]
    return QueryResult(results=results, total=total, sort=options.sort, pattern=compiled, sync=synced)


async def recent(db: aiosqlite.Connection, options: QueryOptions) -> QueryResult:
    """Sync (unless disabled), then list the most recent or most frecent commands."""
    _check_sort(options.sort)
    synced = await _auto_sync(db, options)
    limit = options.limit if options.limit is not None else DEFAULT_LIST_LIMIT

    results: list
    if options.sort == "frecency":
        results = await list_commands_with_frecency(db, limit=limit, cwd=options.cwd)
    else:
        results = await list_commands(db, limit=limit, cwd=options.cwd)
    return QueryResult(results=results, total=len(results), sort=options.sort, sync=synced)
