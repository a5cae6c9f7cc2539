"""Console output and error mapping shared by the CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from keycheck.errors import ExitKind, KeycheckError
from keycheck.models import ScanResult, ValidationResult

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=verbose)],
        force=True,
    )


@contextmanager
def exit_on_error() -> Iterator[None]:
    """Turn keycheck errors into their exit codes."""
    try:
        yield
    except typer.Exit:
        raise
    except KeycheckError as exc:
        err_console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        raise typer.Exit(int(exc.exit_kind)) from None
    except OSError as exc:
        err_console.print(f"[red]I/O error:[/red] {exc}")
        raise typer.Exit(int(ExitKind.IO_ERROR)) from None
    except Exception as exc:
        logger.exception("Unexpected failure")
        err_console.print(f"[red]Internal error:[/red] {exc}")
        raise typer.Exit(int(ExitKind.INTERNAL_ERROR)) from None


def render_table(headers: Sequence[str], rows: Sequence[tuple[Any, ...]], title: str | None = None) -> None:
    table = Table(show_lines=False, title=title)
    for h in headers:
        table.add_column(h)
    for row in rows:
        table.add_row(*(str(v) for v in row))
    console.print(table)
    console.print(f"({len(rows)} rows)")


def _percent(value: float) -> str:
    return f"{value * 100:.1f}%"


def render_scan_summary(result: ScanResult) -> None:
    metrics = result.metrics
    rows = [
        ("files", f"{metrics.scanned_files}/{metrics.total_files}"),
        ("keys", len(result.keys)),
        ("file coverage", _percent(metrics.file_coverage)),
        ("element coverage", _percent(metrics.element_coverage)),
        ("handler coverage", _percent(metrics.handler_coverage)),
        ("parse errors", metrics.parse_errors),
        ("cache hits", f"{metrics.cache_hits}/{metrics.cache_hits + metrics.cache_misses}"),
        ("duration", f"{result.duration_ms} ms"),
    ]
    if metrics.incremental_base:
        rows.append(("changed since", metrics.incremental_base))
    table = Table(show_header=False, title="Scan")
    table.add_column("metric")
    table.add_column("value")
    for name, value in rows:
        table.add_row(name, str(value))
    console.print(table)
    if metrics.truncated:
        console.print("[yellow]Scan was cancelled before all files were scanned; results are partial.[/yellow]")
    for error in metrics.errors:
        console.print(f"[yellow]{error.type}[/yellow] {error.file}: {error.message}")
    for spot in result.blind_spots:
        console.print(f"[dim]{spot.type}[/dim] {spot.location}: {spot.message}")


def render_validation(result: ValidationResult) -> None:
    summary = result.summary
    console.print(
        f"keys {summary.total_keys}  lost {summary.lost_keys}  added {summary.added_keys}  "
        f"renamed {summary.renamed_keys}  drift {summary.drift_percentage:.1f}%"
    )
    if result.violations:
        render_table(
            ["type", "severity", "key", "message", "policy"],
            [
                (v.type.value, v.severity.value, v.key or "-", v.message, v.policy)
                for v in result.violations
            ],
            title="Violations",
        )
    for warning in result.warnings:
        console.print(f"[yellow]warning[/yellow] {warning}")
    if result.passed:
        console.print("[green]Validation passed[/green]")
    else:
        console.print(f"[red]Validation failed with {len(result.violations)} violation(s)[/red]")
