from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from watchfiles import awatch

from keycheck.core.languages import is_source_file
from keycheck.core.sources import SKIP_DIRECTORIES

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 400


def _is_watched_file(path: Path, root: Path) -> bool:
    if not is_source_file(path):
        return False
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        parts = path.parts
    return not any(part in SKIP_DIRECTORIES for part in parts[:-1])


class WatchfilesWatcher:
    """Watch a project for Dart source changes and trigger a callback.

    Implements the ``FileWatcherPort`` protocol. Changes under tool and build
    directories (including the scan cache) are ignored.
    """

    def __init__(
        self,
        directory: str | Path,
        on_change: Callable[[set[Path]], Coroutine[Any, Any, None]],
        *,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        self._directory = Path(directory)
        self._on_change = on_change
        self._debounce_ms = debounce_ms
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._watch())
        logger.info("Watching %s for Dart changes", self._directory)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Stopped watching %s", self._directory)

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def _watch(self) -> None:
        root = self._directory.resolve()
        async for changes in awatch(self._directory, debounce=self._debounce_ms):
            paths = {Path(p) for _, p in changes if _is_watched_file(Path(p), root)}
            if not paths:
                continue
            logger.info("Detected changes in %d Dart file(s)", len(paths))
            try:
                await self._on_change(paths)
            except Exception:
                logger.exception("Error in watcher callback")
