from keycheck.cache.store import (
    INDEX_FILE,
    CacheEntry,
    CacheStats,
    HotEntry,
    ScanCache,
    content_hash,
    payload_name,
)

__all__ = [
    "INDEX_FILE",
    "CacheEntry",
    "CacheStats",
    "HotEntry",
    "ScanCache",
    "content_hash",
    "payload_name",
]
