"""Scan cache maintenance commands."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import typer

from keycheck.cache import ScanCache
from keycheck.cli.common import console, exit_on_error, render_table
from keycheck.cli.scan import ConfigOption, ProjectPath
from keycheck.config import load_config
from keycheck.core.scan import cache_directory

cache_app = typer.Typer(help="Inspect and maintain the scan cache.")


def _open(path: Path, config_file: Path | None) -> ScanCache:
    config = load_config(config_file, path)
    return ScanCache(cache_directory(path, config.cache), ttl=timedelta(hours=config.cache.ttl_hours))


@cache_app.command("stats")
def stats(path: ProjectPath = Path("."), config_file: ConfigOption = None) -> None:
    """Show cache size, hit rate and the most used entries."""
    with exit_on_error():
        cache = _open(path, config_file)
        summary = cache.stats()
        console.print(f"Cache at {cache.directory}")
        console.print(
            f"entries {summary.entries}  size {summary.total_size} bytes  "
            f"hit rate {summary.hit_rate * 100:.1f}% ({summary.total_hits} hits, {summary.total_misses} misses)"
        )
        if summary.write_errors:
            console.print(f"[yellow]{summary.write_errors} cache write(s) failed[/yellow]")
        if summary.hot_entries:
            render_table(
                ["file", "hits", "last accessed"],
                [(entry.file_path, entry.hits, entry.last_accessed.isoformat()) for entry in summary.hot_entries],
                title="Hot entries",
            )


@cache_app.command("clean")
def clean(path: ProjectPath = Path("."), config_file: ConfigOption = None) -> None:
    """Remove expired entries."""
    with exit_on_error():
        removed = _open(path, config_file).clean_expired()
        console.print(f"[green]Removed[/green] {removed} expired entries")


@cache_app.command("clear")
def clear(path: ProjectPath = Path("."), config_file: ConfigOption = None) -> None:
    """Delete the whole cache."""
    with exit_on_error():
        cache = _open(path, config_file)
        cache.clear()
        console.print(f"[green]Cleared[/green] {cache.directory}")
