"""Tests for baseline storage and the validate operation."""

from collections.abc import Callable
from pathlib import Path

import pytest

from keycheck.config import PolicyConfig
from keycheck.core.validate import run_validate, validate_snapshots
from keycheck.errors import IoError, SchemaMismatchError
from keycheck.models import Snapshot
from keycheck.registry.local import FileBaselineProvider

SnapshotFactory = Callable[..., Snapshot]


class _MemoryBaseline:
    def __init__(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot
        self.fetched = 0

    def fetch(self) -> Snapshot:
        self.fetched += 1
        return self.snapshot

    def store(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot


def test_run_validate_uses_provider(make_snapshot: SnapshotFactory) -> None:
    provider = _MemoryBaseline(make_snapshot("a", "b", "c", "d"))

    result = run_validate(provider, make_snapshot("a", "b", "e"), PolicyConfig(fail_on_lost=False, max_drift=100))

    assert provider.fetched == 1
    assert result.passed is True
    assert result.summary.lost_keys == 2
    assert result.summary.added_keys == 1
    assert result.summary.drift_percentage == 75.0


def test_schema_mismatch_produces_no_result(make_snapshot: SnapshotFactory) -> None:
    baseline = make_snapshot("a").model_copy(update={"schema_version": "0.9"})

    with pytest.raises(SchemaMismatchError):
        validate_snapshots(baseline, make_snapshot("a"), PolicyConfig())


def test_baseline_store_and_fetch(tmp_path: Path, make_snapshot: SnapshotFactory) -> None:
    provider = FileBaselineProvider(tmp_path / ".keycheck" / "baseline.json")
    snapshot = make_snapshot("a", "b")

    assert provider.exists() is False
    provider.store(snapshot)

    assert provider.exists() is True
    assert provider.fetch() == snapshot


def test_missing_baseline_is_io_error(tmp_path: Path) -> None:
    with pytest.raises(IoError, match="baseline create"):
        FileBaselineProvider(tmp_path / "missing.json").fetch()


def test_malformed_baseline_is_io_error(tmp_path: Path) -> None:
    path = tmp_path / "baseline.json"
    path.write_text("{broken", encoding="utf-8")

    with pytest.raises(IoError):
        FileBaselineProvider(path).fetch()


def test_old_baseline_schema_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "baseline.json"
    path.write_text('{"schemaVersion": "0.9", "keys": []}', encoding="utf-8")

    with pytest.raises(SchemaMismatchError):
        FileBaselineProvider(path).fetch()
