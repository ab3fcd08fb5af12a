"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from deja import __version__
from deja.config import CONFIG_FILE, AppConfig, load_config, save_config
from deja.indexer import sync
from deja.onboard import CLAUDE_MD, OnboardStatus, onboard
from deja.query import SORT_MODES, QueryOptions, QueryResult, recent, search
from deja.relevance import RELEVANCE_MODES
from deja.storage.database import get_stats, open_db
from deja.storage.models import Stats, SyncResult
from deja.utils.formatting import format_command

app = typer.Typer(
    name="deja",
    help="Search bash commands from previous Claude Code sessions.",
    add_completion=False,
)
console = Console()

logger = logging.getLogger(__name__)


def _setup_logging(config: AppConfig) -> None:
    log_path = Path(config.logging.file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.FileHandler(str(log_path))],
    )


def _read_config() -> AppConfig:
    try:
        return load_config()
    except (ValueError, OSError) as e:
        console.print(f"[red]Cannot load configuration: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _load(sort: str | None = None) -> AppConfig:
    config = _read_config()
    _setup_logging(config)
    if sort is not None and sort not in SORT_MODES:
        console.print(f"[red]Unknown sort mode: {escape(sort)}. Use one of: {', '.join(SORT_MODES)}[/red]")
        raise typer.Exit(1)
    if config.search.relevance not in RELEVANCE_MODES:
        console.print(f"[red]Unknown relevance mode: {escape(config.search.relevance)}[/red]")
        raise typer.Exit(1)
    return config


def _query_options(
    config: AppConfig,
    cwd: str | None,
    here: bool,
    limit: int | None,
    sort: str | None,
    no_sync: bool,
    regex: bool = False,
) -> QueryOptions:
    return QueryOptions(
        cwd=os.getcwd() if here else cwd,
        limit=limit,
        sort=sort or config.search.sort,
        use_regex=regex,
        no_sync=no_sync,
        source_root=Path(config.source.projects_dir).expanduser(),
        extension=config.source.extension,
        relevance=config.search.relevance,
    )


def _run(coro):
    """Run a store operation, turning storage failures into a clean exit."""
    try:
        return asyncio.run(coro)
    except (sqlite3.Error, OSError) as e:
        logger.error("Database error: %s", e)
        console.print(f"[red]Database error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


async def _search(config: AppConfig, pattern: str, options: QueryOptions) -> QueryResult:
    db = await open_db(config.storage.db_path, fts=config.storage.fts)
    try:
        return await search(db, pattern, options)
    finally:
        await db.close()


async def _recent(config: AppConfig, options: QueryOptions) -> QueryResult:
    db = await open_db(config.storage.db_path, fts=config.storage.fts)
    try:
        return await recent(db, options)
    finally:
        await db.close()


async def _sync(config: AppConfig, force: bool) -> tuple[SyncResult, Stats]:
    db = await open_db(config.storage.db_path, fts=config.storage.fts)
    try:
        result = await sync(
            db,
            Path(config.source.projects_dir).expanduser(),
            force=force,
            extension=config.source.extension,
        )
        return result, await get_stats(db)
    finally:
        await db.close()


def _print_results(result: QueryResult) -> None:
    for cmd in result.results:
        for line in format_command(cmd, pattern=result.pattern, show_frequency=result.frecency):
            console.print(line)
        console.print()


@app.command("search")
def search_cmd(
    pattern: str = typer.Argument(..., help="Substring (or regex with --regex) to look for"),
    regex: bool = typer.Option(False, "--regex", "-r", help="Treat the pattern as a regular expression"),
    cwd: str = typer.Option(None, "--cwd", help="Only commands run in this directory"),
    here: bool = typer.Option(False, "--here", help="Only commands run in the current directory"),
    limit: int = typer.Option(None, "--limit", "-n", min=0, help="Maximum number of results to show"),
    sort: str = typer.Option(None, "--sort", help="Sort by 'frecency' or 'time'"),
    no_sync: bool = typer.Option(False, "--no-sync", help="Skip indexing new sessions first"),
) -> None:
    """Search command history."""
    config = _load(sort)
    options = _query_options(config, cwd, here, limit, sort, no_sync, regex)
    result = _run(_search(config, pattern, options))

    if not result.results:
        console.print(f"No commands found matching: {escape(pattern)}")
        return

    showing = f" (showing {options.limit})" if options.limit is not None and result.total > options.limit else ""
    console.print(f"Found {result.total} command(s){showing} \\[sorted by {result.sort}]:\n")
    _print_results(result)


app.command("s", hidden=True)(search_cmd)


@app.command("list")
def list_cmd(
    limit: int = typer.Option(None, "--limit", "-n", min=0, help="Number of commands (default from config)"),
    cwd: str = typer.Option(None, "--cwd", help="Only commands run in this directory"),
    here: bool = typer.Option(False, "--here", help="Only commands run in the current directory"),
    sort: str = typer.Option(None, "--sort", help="Sort by 'frecency' or 'time'"),
    no_sync: bool = typer.Option(False, "--no-sync", help="Skip indexing new sessions first"),
) -> None:
    """List recent commands."""
    config = _load(sort)
    options = _query_options(config, cwd, here, limit, sort, no_sync)
    if options.limit is None:
        options.limit = config.search.default_limit
    result = _run(_recent(config, options))

    if not result.results:
        console.print("No commands in history.")
        return

    cwd_label = f" in {escape(options.cwd)}" if options.cwd else ""
    console.print(f"Last {len(result.results)} command(s){cwd_label} \\[sorted by {result.sort}]:\n")
    _print_results(result)


app.command("ls", hidden=True)(list_cmd)


@app.command("sync")
def sync_cmd(
    force: bool = typer.Option(False, "--force", "-f", help="Re-index all sessions from the start"),
) -> None:
    """Index new commands from Claude Code sessions."""
    config = _load()
    console.print("Force re-indexing all sessions..." if force else "Syncing new commands...")

    result, stats = _run(_sync(config, force))

    console.print(f"\nScanned {result.files_scanned} file(s)")
    console.print(f"Indexed {result.new_commands} new command(s)")

    if result.errors:
        console.print("\n[red]Errors:[/red]")
        for err in result.errors:
            console.print(f"  - {escape(err)}")

    console.print(f"\nTotal: {stats.total_commands} commands from {stats.indexed_files} session files")
    if result.errors:
        raise typer.Exit(1)


@app.command("onboard")
def onboard_cmd(
    force: bool = typer.Option(False, "--force", "-f", help="Replace an existing deja section"),
) -> None:
    """Add deja instructions to ~/.claude/CLAUDE.md."""
    target = CLAUDE_MD
    status = onboard(target, force=force)

    if status is OnboardStatus.EXISTS:
        console.print(f"deja section already exists in {target}")
        console.print("Use --force to update it")
        return
    if status is OnboardStatus.MIGRATED:
        console.print("Migrating from ran to deja...")
    action = "Created" if status is OnboardStatus.CREATED else "Updated"
    console.print(f"[green]{action} {target} with deja section[/green]")


@app.command()
def config(
    key: str = typer.Argument(None, help="Config key (e.g., search.sort)"),
    value: str = typer.Argument(None, help="New value"),
) -> None:
    """View or modify configuration."""
    cfg = _read_config()

    if key is None:
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for section, obj in cfg.sections().items():
            for attr, current in vars(obj).items():
                table.add_row(f"{section}.{attr}", str(current))
        console.print(table)
        return

    if value is None:
        console.print("[red]Usage: deja config <key> <value>[/red]")
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) != 2:
        console.print("[red]Key format: section.key (e.g., search.sort)[/red]")
        raise typer.Exit(1)

    section, attr = parts
    section_map = cfg.sections()
    if section not in section_map:
        console.print(f"[red]Unknown section: {section}[/red]")
        raise typer.Exit(1)

    obj = section_map[section]
    if not hasattr(obj, attr):
        console.print(f"[red]Unknown key: {key}[/red]")
        raise typer.Exit(1)

    # Type coercion
    current = getattr(obj, attr)
    try:
        if isinstance(current, bool):
            typed_value = value.lower() in ("true", "1", "yes")
        elif isinstance(current, int):
            typed_value = int(value)
        else:
            typed_value = value
    except ValueError:
        console.print(f"[red]Invalid value type for {key}[/red]")
        raise typer.Exit(1)

    setattr(obj, attr, typed_value)
    save_config(cfg)
    console.print(f"[green]{key} = {typed_value}[/green]")


@app.command()
def logs(
    lines: int = typer.Option(50, "--lines", "-n", help="Number of lines"),
) -> None:
    """View the deja log."""
    log_path = Path(_read_config().logging.file).expanduser()
    if not log_path.exists():
        console.print("[dim]No log file found.[/dim]")
        return

    log_lines = log_path.read_text().strip().split("\n")
    for line in log_lines[-lines:]:
        console.print(escape(line))


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"deja v{__version__}")
    console.print(f"Python: {sys.version.split()[0]}")
    console.print(f"Config: {CONFIG_FILE}")


if __name__ == "__main__":
    app()
