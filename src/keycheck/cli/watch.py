import asyncio
from pathlib import Path
from typing import Annotated

import typer

from keycheck.cache import ScanCache
from keycheck.cli.common import console, exit_on_error, render_scan_summary
from keycheck.cli.scan import ConfigOption, ProjectPath
from keycheck.config import KeycheckConfig, load_config
from keycheck.core.scan import open_cache, run_scan
from keycheck.watcher.watchfiles_adapter import DEFAULT_DEBOUNCE_MS, WatchfilesWatcher


async def _watch(path: Path, config: KeycheckConfig, cache: ScanCache | None, debounce_ms: int) -> None:
    async def rescan(changed: set[Path] | None = None) -> None:
        if changed:
            console.print(f"[cyan]{len(changed)} file(s) changed[/cyan], rescanning")
        result = await asyncio.to_thread(run_scan, path, config, cache=cache)
        render_scan_summary(result)

    await rescan()
    watcher = WatchfilesWatcher(path, rescan, debounce_ms=debounce_ms)
    await watcher.start()
    try:
        await watcher.wait()
    finally:
        await watcher.stop()


def watch(
    path: ProjectPath = Path("."),
    config_file: ConfigOption = None,
    debounce: Annotated[int, typer.Option(min=0, help="Milliseconds to wait for changes to settle.")] = DEFAULT_DEBOUNCE_MS,
) -> None:
    """Rescan whenever a Dart file changes. Stop with Ctrl-C."""
    with exit_on_error():
        config = load_config(config_file, path)
        cache = open_cache(path, config.cache)
        try:
            asyncio.run(_watch(path, config, cache, debounce))
        except KeyboardInterrupt:
            console.print("Stopped watching")
