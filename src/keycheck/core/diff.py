"""Structural diff between a baseline snapshot and a current one. Pure, no I/O."""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from keycheck.errors import SchemaMismatchError
from keycheck.models import SCHEMA_VERSION, KeyRecord, KeyStatus, Snapshot

DEFAULT_RENAME_THRESHOLD = 0.6

_TOKEN_SPLIT = re.compile(r"[._\-\s:/]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


@dataclass(frozen=True)
class SnapshotDiff:
    unchanged: tuple[str, ...]
    added: tuple[str, ...]
    lost: tuple[str, ...]
    renamed: tuple[tuple[str, str], ...]
    relocated: tuple[str, ...] = ()
    baseline: Mapping[str, KeyRecord] = field(default_factory=dict)
    current: Mapping[str, KeyRecord] = field(default_factory=dict)

    @property
    def baseline_count(self) -> int:
        return len(self.baseline)

    @property
    def total_changes(self) -> int:
        return len(self.lost) + len(self.renamed) + len(self.added)

    @property
    def drift_percentage(self) -> float:
        drift = self.total_changes / max(1, self.baseline_count) * 100
        return min(100.0, max(0.0, drift))

    @property
    def has_changes(self) -> bool:
        return self.total_changes > 0

    def records(self) -> list[KeyRecord]:
        """Every key of both snapshots, annotated with its diff status."""
        renamed = {key for pair in self.renamed for key in pair}
        added, lost = set(self.added), set(self.lost)
        out = []
        for key in sorted(set(self.baseline) | set(self.current)):
            if key in renamed:
                status = KeyStatus.RENAMED
            elif key in added:
                status = KeyStatus.ADDED
            elif key in lost:
                status = KeyStatus.LOST
            else:
                status = KeyStatus.FOUND
            record = self.current.get(key) or self.baseline[key]
            out.append(record.model_copy(update={"status": status}))
        return out


def ensure_schema(snapshot: Snapshot, role: str) -> None:
    if snapshot.schema_version != SCHEMA_VERSION:
        raise SchemaMismatchError(SCHEMA_VERSION, snapshot.schema_version, role)


def id_tokens(key: str) -> set[str]:
    tokens = set()
    for part in _TOKEN_SPLIT.split(key):
        tokens.update(token.lower() for token in _CAMEL_BOUNDARY.split(part) if token)
    return tokens


def _jaccard(left: set[str], right: set[str]) -> float:
    if not left and not right:
        return 0.0
    return len(left & right) / len(left | right)


def fingerprint(record: KeyRecord) -> set[str]:
    prints = {f"loc:{location.file}#{location.context}" for location in record.locations or ()}
    prints.update(f"tag:{tag}" for tag in record.tags)
    return prints


def rename_similarity(old: KeyRecord, new: KeyRecord) -> float:
    """Average of id-token similarity and location/tag fingerprint similarity."""
    name_score = _jaccard(id_tokens(old.id), id_tokens(new.id))
    old_print, new_print = fingerprint(old), fingerprint(new)
    if not old_print and not new_print:
        return name_score
    return (name_score + _jaccard(old_print, new_print)) / 2


def diff_snapshots(
    baseline: Snapshot,
    current: Snapshot,
    *,
    rename_threshold: float = DEFAULT_RENAME_THRESHOLD,
) -> SnapshotDiff:
    ensure_schema(baseline, "baseline")
    ensure_schema(current, "current")

    before = baseline.key_map()
    after = current.key_map()

    unchanged = sorted(set(before) & set(after))
    lost = sorted(set(before) - set(after))
    added = sorted(set(after) - set(before))
    relocated = [key for key in unchanged if fingerprint(before[key]) != fingerprint(after[key])]

    # Greedy one-to-one matching, best score first; ties broken by key ids.
    candidates = []
    for old in lost:
        for new in added:
            score = rename_similarity(before[old], after[new])
            if score >= rename_threshold:
                candidates.append((-score, old, new))
    candidates.sort()

    renamed = []
    matched_old: set[str] = set()
    matched_new: set[str] = set()
    for _, old, new in candidates:
        if old in matched_old or new in matched_new:
            continue
        matched_old.add(old)
        matched_new.add(new)
        renamed.append((old, new))

    return SnapshotDiff(
        unchanged=tuple(unchanged),
        added=tuple(key for key in added if key not in matched_new),
        lost=tuple(key for key in lost if key not in matched_old),
        renamed=tuple(sorted(renamed)),
        relocated=tuple(relocated),
        baseline=before,
        current=after,
    )
