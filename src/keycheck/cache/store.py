"""Content-hash keyed cache of per-file analyses.

Layout under the cache root:

    cache_index.json                   index of entries plus lifetime statistics
    <sanitised-path>_<path8>_<hash16>.json   one FileAnalysis payload per entry

Every failure to read an entry is a miss; broken entries are evicted. Failures to
write are logged and counted in the statistics, never raised to the scanner.
"""

import hashlib
import logging
import os
import re
import shutil
import tempfile
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from keycheck.errors import CacheCorruptionError
from keycheck.models import FileAnalysis

logger = logging.getLogger(__name__)

INDEX_FILE = "cache_index.json"
INDEX_VERSION = 1
HASH_LENGTH = 16
PATH_DIGEST_LENGTH = 8
HOT_ENTRY_LIMIT = 10
DEFAULT_TTL = timedelta(hours=24)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9-]")


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()[:HASH_LENGTH]


def payload_name(file_path: str, file_hash: str) -> str:
    # the raw-path digest separates paths that sanitise alike, e.g. a.b.dart and a_b.dart
    path_digest = hashlib.sha256(file_path.encode("utf-8")).hexdigest()[:PATH_DIGEST_LENGTH]
    return f"{_UNSAFE_CHARS.sub('_', file_path)}_{path_digest}_{file_hash}.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(BaseModel):
    file_path: str
    file_hash: str
    payload: str
    created: datetime
    last_accessed: datetime
    size: int = 0
    hits: int = 0


class HotEntry(BaseModel):
    file_path: str
    hits: int
    last_accessed: datetime


class CacheStats(BaseModel):
    entries: int = 0
    total_size: int = 0
    total_hits: int = 0
    total_misses: int = 0
    write_errors: int = 0
    hit_rate: float = 0.0
    hot_entries: list[HotEntry] = Field(default_factory=list)


class CacheIndex(BaseModel):
    version: int = INDEX_VERSION
    entries: dict[str, CacheEntry] = Field(default_factory=dict)
    stats: CacheStats = Field(default_factory=CacheStats)


class ScanCache:
    """Reads may run from many scanner threads; every mutation holds one lock.

    The index is persisted by `flush()`, which the scanner calls once per scan.
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.directory = Path(directory)
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._dirty = False
        self.session_hits = 0
        self.session_misses = 0
        self.session_write_errors = 0
        self._index = self._load_index()

    @property
    def index_path(self) -> Path:
        return self.directory / INDEX_FILE

    def __len__(self) -> int:
        return len(self._index.entries)

    def _load_index(self) -> CacheIndex:
        if not self.index_path.is_file():
            return CacheIndex()
        try:
            index = CacheIndex.model_validate_json(self.index_path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.warning("Cache index at %s is unreadable, starting fresh: %s", self.index_path, exc)
            return CacheIndex()
        if index.version != INDEX_VERSION:
            logger.info("Cache index version %s is outdated, starting fresh", index.version)
            return CacheIndex()
        return index

    def _expired(self, entry: CacheEntry, now: datetime) -> bool:
        return now - entry.created >= self.ttl

    def _read_payload(self, entry: CacheEntry) -> FileAnalysis:
        path = self.directory / entry.payload
        try:
            return FileAnalysis.model_validate_json(path.read_bytes())
        except (OSError, ValidationError) as exc:
            raise CacheCorruptionError(f"Payload {path} is unreadable: {exc}") from exc

    def _record_miss(self) -> None:
        with self._lock:
            self.session_misses += 1
            self._index.stats.total_misses += 1
            self._dirty = True

    def get(self, file_path: str, file_hash: str, signature: str | None = None) -> FileAnalysis | None:
        entry = self._index.entries.get(file_path)
        now = self._clock()
        if entry is None or entry.file_hash != file_hash:
            self._record_miss()
            return None
        if self._expired(entry, now):
            self._evict(file_path, entry)
            self._record_miss()
            return None
        try:
            analysis = self._read_payload(entry)
        except CacheCorruptionError as exc:
            logger.warning("Evicting corrupt cache entry for %s: %s", file_path, exc)
            self._evict(file_path, entry)
            self._record_miss()
            return None
        stale = analysis.file != file_path or analysis.content_hash != file_hash
        if stale or (signature is not None and analysis.signature != signature):
            self._evict(file_path, entry)
            self._record_miss()
            return None

        with self._lock:
            entry.hits += 1
            entry.last_accessed = now
            self.session_hits += 1
            self._index.stats.total_hits += 1
            self._dirty = True
        return analysis

    def put(self, file_path: str, file_hash: str, analysis: FileAnalysis) -> None:
        now = self._clock()
        payload = payload_name(file_path, file_hash)
        data = analysis.model_dump_json(by_alias=True).encode("utf-8")
        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                (self.directory / payload).write_bytes(data)
            except OSError as exc:
                logger.warning("Could not write cache entry for %s: %s", file_path, exc)
                self._record_write_error()
                return
            previous = self._index.entries.get(file_path)
            if previous is not None and previous.payload != payload:
                self._unlink(previous.payload)
            self._index.entries[file_path] = CacheEntry(
                file_path=file_path,
                file_hash=file_hash,
                payload=payload,
                created=now,
                last_accessed=now,
                size=len(data),
            )
            self._dirty = True

    def _record_write_error(self) -> None:
        """Callers hold the lock."""
        self.session_write_errors += 1
        self._index.stats.write_errors += 1
        self._dirty = True

    def _unlink(self, payload: str) -> None:
        try:
            (self.directory / payload).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove cache payload %s: %s", payload, exc)

    def _evict(self, file_path: str, entry: CacheEntry) -> None:
        with self._lock:
            if self._index.entries.get(file_path) is entry:
                del self._index.entries[file_path]
                self._dirty = True
            self._unlink(entry.payload)

    def clean_expired(self) -> int:
        """Remove expired entries and their payloads. Returns the number removed."""
        now = self._clock()
        expired = [(path, entry) for path, entry in self._index.entries.items() if self._expired(entry, now)]
        for path, entry in expired:
            self._evict(path, entry)
        if expired:
            logger.info("Removed %d expired cache entries", len(expired))
        self.flush()
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            if self.directory.exists():
                shutil.rmtree(self.directory)
            self._index = CacheIndex()
            self.session_hits = 0
            self.session_misses = 0
            self.session_write_errors = 0
            self._dirty = False

    def _compute_stats(self) -> CacheStats:
        entries = list(self._index.entries.values())
        hits = self._index.stats.total_hits
        misses = self._index.stats.total_misses
        hot = sorted(
            (entry for entry in entries if entry.hits > 0),
            key=lambda entry: (-entry.hits, entry.file_path),
        )[:HOT_ENTRY_LIMIT]
        return CacheStats(
            entries=len(entries),
            total_size=sum(entry.size for entry in entries),
            total_hits=hits,
            total_misses=misses,
            write_errors=self._index.stats.write_errors,
            hit_rate=hits / (hits + misses) if hits + misses else 0.0,
            hot_entries=[
                HotEntry(file_path=entry.file_path, hits=entry.hits, last_accessed=entry.last_accessed)
                for entry in hot
            ],
        )

    def stats(self) -> CacheStats:
        with self._lock:
            return self._compute_stats()

    def flush(self) -> bool:
        """Write the index atomically if anything changed since the last flush.

        Returns False when the index could not be written; the entries stay
        dirty so a later flush can retry.
        """
        with self._lock:
            if not self._dirty:
                return True
            self._index.stats = self._compute_stats()
            try:
                self._write_index()
            except OSError as exc:
                logger.warning("Could not write cache index %s: %s", self.index_path, exc)
                self._record_write_error()
                return False
            self._dirty = False
            return True

    def _write_index(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".index-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(self._index.model_dump_json(indent=2))
            os.replace(tmp_name, self.index_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
