import threading
from datetime import timedelta
from pathlib import Path

from keycheck.cache import ScanCache
from keycheck.config import CacheConfig, KeycheckConfig
from keycheck.core.detectors import build_pipeline
from keycheck.core.ports.changes import ChangedFilesProvider
from keycheck.core.scanner import Scanner
from keycheck.core.sources import SourceSetResolver
from keycheck.models import ScanResult


def cache_directory(root: Path, config: CacheConfig) -> Path:
    directory = Path(config.directory)
    return directory if directory.is_absolute() else root / directory


def open_cache(root: str | Path, config: CacheConfig) -> ScanCache | None:
    if not config.enabled:
        return None
    return ScanCache(cache_directory(Path(root), config), ttl=timedelta(hours=config.ttl_hours))


def run_scan(
    root: str | Path,
    config: KeycheckConfig,
    *,
    cache: ScanCache | None = None,
    since: str | None = None,
    changed_files: ChangedFilesProvider | None = None,
    cancel: threading.Event | None = None,
    deadline: float | None = None,
) -> ScanResult:
    """Resolve the source set of a project and scan it.

    Detector configuration and the incremental reference are validated before
    any file is read, so a ConfigError never leaves a partial scan behind.
    """
    project_root = Path(root)
    pipeline = build_pipeline(config.scan)
    resolver = SourceSetResolver(
        project_root,
        config.scan,
        changed_files=changed_files,
        cache_dir=cache_directory(project_root, config.cache),
    )
    sources = resolver.resolve(since)
    scanner = Scanner(config.scan, cache=cache, pipeline=pipeline)
    return scanner.scan(sources, cancel=cancel, deadline=deadline)
