"""Rich markup formatting for command history results."""

from __future__ import annotations

import re

from rich.markup import escape

from deja.frecency import parse_timestamp
from deja.storage.models import AggregatedCommand, ExecutedCommand

STATUS_OK = "[green]\\[ok][/green]"
STATUS_ERROR = "[red]\\[error][/red]"


def format_timestamp(timestamp: str | None) -> str:
    """Local time for display, or ``unknown``."""
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return "unknown"
    return parsed.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def highlight(text: str, pattern: re.Pattern[str] | None) -> str:
    """Escape ``text`` for rich and wrap the matches of ``pattern`` in bold yellow."""
    if pattern is None:
        return escape(text)

    parts: list[str] = []
    last = 0
    for match in pattern.finditer(text):
        start, end = match.span()
        if start == end:
            continue
        parts.append(escape(text[last:start]))
        parts.append(f"[bold yellow]{escape(text[start:end])}[/bold yellow]")
        last = end
    parts.append(escape(text[last:]))
    return "".join(parts)


def format_command(
    cmd: ExecutedCommand | AggregatedCommand,
    pattern: re.Pattern[str] | None = None,
    show_frequency: bool = False,
) -> list[str]:
    """Lines of rich markup describing one result."""
    status = STATUS_ERROR if cmd.is_error else STATUS_OK
    headline = f"{status} [cyan]{highlight(cmd.command, pattern)}[/cyan]"
    if show_frequency and isinstance(cmd, AggregatedCommand) and cmd.frequency > 1:
        headline += f" [magenta]({cmd.frequency}x)[/magenta]"

    lines = [headline]
    if cmd.description:
        lines.append(f"   [dim]{escape(cmd.description)}[/dim]")
    lines.append(f"   [dim]{format_timestamp(cmd.timestamp)} | {escape(cmd.cwd or 'unknown dir')}[/dim]")
    return lines
