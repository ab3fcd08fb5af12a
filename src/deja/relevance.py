"""Text relevance signals used to weight frecency in search results.

Two scorers are available: ``SubstringRelevance`` gives binary relevance by
case-insensitive containment, ``FtsRelevance`` gives graded relevance from
SQLite FTS5 ``bm25`` over the ``commands_fts`` index.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import Protocol

import aiosqlite

from deja.storage.database import has_fts

logger = logging.getLogger(__name__)

RELEVANCE_MODES = ("auto", "substring", "fts")

_TOKEN_RE = re.compile(r"\w+")


class RelevanceScorer(Protocol):
    name: str

    async def score(
        self,
        db: aiosqlite.Connection,
        pattern: str,
        commands: list[str],
    ) -> dict[str, float]:
        """Relevance of each command text to ``pattern``; higher is better."""
        ...


class SubstringRelevance:
    name = "substring"

    def __init__(self, compiled: re.Pattern[str] | None = None) -> None:
        self.compiled = compiled

    async def score(
        self,
        db: aiosqlite.Connection,
        pattern: str,
        commands: list[str],
    ) -> dict[str, float]:
        if self.compiled is not None:
            return {c: 1.0 if self.compiled.search(c) else 0.0 for c in commands}
        needle = pattern.lower()
        return {c: 1.0 if needle in c.lower() else 0.0 for c in commands}


def fts_query(pattern: str) -> str | None:
    """Build an FTS5 prefix query from the word tokens of ``pattern``."""
    tokens = _TOKEN_RE.findall(pattern)
    if not tokens:
        return None
    return " OR ".join(f'"{token}"*' for token in tokens)


class FtsRelevance:
    name = "fts"

    async def score(
        self,
        db: aiosqlite.Connection,
        pattern: str,
        commands: list[str],
    ) -> dict[str, float]:
        query = fts_query(pattern)
        if query is None:
            return {}

        try:
            cursor = await db.execute(
                "SELECT command, bm25(commands_fts) FROM commands_fts WHERE commands_fts MATCH ?",
                (query,),
            )
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            logger.warning("Full-text relevance query failed for %r: %s", pattern, e)
            return {}

        # bm25 is negative, lower is a better match
        best: dict[str, float] = {}
        for command, rank in rows:
            relevance = -rank
            if command not in best or relevance > best[command]:
                best[command] = relevance

        wanted = set(commands)
        return {c: r for c, r in best.items() if c in wanted}


async def select_relevance(
    db: aiosqlite.Connection,
    mode: str = "auto",
    compiled: re.Pattern[str] | None = None,
) -> RelevanceScorer:
    """Pick a scorer for ``mode``; ``auto`` uses FTS when the store has the index."""
    if mode not in RELEVANCE_MODES:
        raise ValueError(f"Unknown relevance mode: {mode}")
    if mode == "substring":
        return SubstringRelevance(compiled)
    if await has_fts(db):
        return FtsRelevance()
    if mode == "fts":
        logger.warning("Full-text index not available, falling back to substring relevance")
    return SubstringRelevance(compiled)
