"""Baseline refresh: auto-tagging and carrying hand-curated metadata forward. Pure, no I/O."""

import re
from collections.abc import Iterable

from keycheck.config import AutoTagRule
from keycheck.errors import ConfigError
from keycheck.models import KeyStatus, Snapshot


class AutoTagger:
    def __init__(self, rules: Iterable[AutoTagRule]) -> None:
        self._rules: list[tuple[re.Pattern[str], list[str]]] = []
        for rule in rules:
            try:
                self._rules.append((re.compile(rule.pattern), rule.tags))
            except re.error as exc:
                raise ConfigError(f"Auto-tag pattern {rule.pattern!r} is invalid: {exc}") from exc

    def tags_for(self, key: str) -> set[str]:
        tags: set[str] = set()
        for regex, rule_tags in self._rules:
            if regex.search(key):
                tags.update(rule_tags)
        return tags

    def apply(self, snapshot: Snapshot) -> Snapshot:
        keys = [
            record.model_copy(update={"tags": sorted(set(record.tags) | self.tags_for(record.id))})
            for record in snapshot.keys
        ]
        return snapshot.model_copy(update={"keys": keys})


def merge_baseline(previous: Snapshot, snapshot: Snapshot) -> Snapshot:
    """Refresh a baseline from a new scan without losing curated metadata.

    Keys still present keep the tags of the previous baseline (unioned with
    the new ones) and a `deprecated` status. Keys gone from the scan are dropped.
    """
    curated = previous.key_map()
    keys = []
    for record in snapshot.keys:
        before = curated.get(record.id)
        if before is None:
            keys.append(record)
            continue
        status = KeyStatus.DEPRECATED if before.status == KeyStatus.DEPRECATED else record.status
        keys.append(record.model_copy(update={"tags": sorted(set(record.tags) | set(before.tags)), "status": status}))
    return snapshot.model_copy(update={"keys": keys})
