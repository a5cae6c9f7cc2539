import time
from pathlib import Path
from typing import Annotated

import typer

from keycheck.cli.common import console, exit_on_error, render_scan_summary
from keycheck.config import KeycheckConfig, load_config
from keycheck.core.baseline import AutoTagger, merge_baseline
from keycheck.core.scan import open_cache, run_scan
from keycheck.models import ScanResult
from keycheck.registry.local import FileBaselineProvider

baseline_app = typer.Typer(help="Manage the stored baseline snapshot.")

ProjectPath = Annotated[Path, typer.Argument(help="Flutter project root.")]
ConfigOption = Annotated[Path | None, typer.Option("--config", "-c", help="Path to a keycheck YAML config.")]
NoCacheOption = Annotated[bool, typer.Option("--no-cache", help="Analyse every file, ignoring the scan cache.")]
IncludeTestsOption = Annotated[bool, typer.Option("--include-tests", help="Also scan test and integration_test files.")]


def scan_project(
    path: Path,
    config: KeycheckConfig,
    *,
    no_cache: bool = False,
    since: str | None = None,
    timeout: float | None = None,
) -> ScanResult:
    cache = None if no_cache else open_cache(path, config.cache)
    deadline = time.monotonic() + timeout if timeout else None
    return run_scan(path, config, cache=cache, since=since, deadline=deadline)


def scan(
    path: ProjectPath = Path("."),
    config_file: ConfigOption = None,
    since: Annotated[str | None, typer.Option(help="Only scan Dart files changed since this git reference.")] = None,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Write the snapshot JSON to this file.")] = None,
    no_cache: NoCacheOption = False,
    include_tests: IncludeTestsOption = False,
    workers: Annotated[int | None, typer.Option(min=1, help="Number of scanner threads.")] = None,
    timeout: Annotated[float | None, typer.Option(help="Stop starting new files after this many seconds.")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the snapshot JSON instead of a summary.")] = False,
) -> None:
    """Scan a project for automation keys."""
    with exit_on_error():
        config = load_config(config_file, path)
        if include_tests:
            config.scan.include_tests = True
        if workers is not None:
            config.scan.workers = workers
        result = scan_project(path, config, no_cache=no_cache, since=since, timeout=timeout)
        snapshot = result.to_snapshot()
        if output is not None:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(snapshot.to_json() + "\n", encoding="utf-8")
        if as_json:
            typer.echo(snapshot.to_json())
            return
        render_scan_summary(result)
        if output is not None:
            console.print(f"[green]Wrote[/green] snapshot to {output}")


@baseline_app.command("create")
def create(
    path: ProjectPath = Path("."),
    config_file: ConfigOption = None,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Baseline file (default from config).")] = None,
    no_cache: NoCacheOption = False,
    include_tests: IncludeTestsOption = False,
    fresh: Annotated[
        bool, typer.Option("--fresh", help="Discard tags and statuses kept in the existing baseline.")
    ] = False,
) -> None:
    """Scan the project and store the result as the new baseline.

    Tags and deprecated statuses of keys already in the stored baseline are
    kept unless --fresh is given. Configured auto-tag rules are applied.
    """
    with exit_on_error():
        config = load_config(config_file, path)
        if include_tests:
            config.scan.include_tests = True
        tagger = AutoTagger(config.auto_tags)
        provider = FileBaselineProvider(output or path / config.baseline)
        previous = provider.fetch() if provider.exists() and not fresh else None
        result = scan_project(path, config, no_cache=no_cache)
        snapshot = tagger.apply(result.to_snapshot())
        if previous is not None:
            snapshot = merge_baseline(previous, snapshot)
        provider.store(snapshot)
        console.print(f"[green]Stored[/green] baseline with {len(snapshot.keys)} keys at {provider.path}")
        if previous is not None:
            console.print(f"Kept curated tags and statuses from the previous baseline ({len(previous.keys)} keys)")
