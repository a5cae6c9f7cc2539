from collections import defaultdict

from keycheck.models import FileAnalysis, KeyUsage


class KeyUsageAggregator:
    """Merges per-file analyses into one KeyUsage per key id. Append-only."""

    def __init__(self) -> None:
        self._usages: dict[str, KeyUsage] = {}
        self._tags: defaultdict[str, set[str]] = defaultdict(set)

    def _usage(self, key: str) -> KeyUsage:
        usage = self._usages.get(key)
        if usage is None:
            usage = self._usages[key] = KeyUsage(id=key)
        return usage

    def add(self, analysis: FileAnalysis) -> None:
        for hit in analysis.hits:
            self._usage(hit.id).locations.append(hit.location)
            self._tags[hit.id].update(hit.tags)
        for linked in analysis.handlers:
            self._usage(linked.key).handlers.append(linked.link)

    def usages(self) -> dict[str, KeyUsage]:
        result = {}
        for key in sorted(self._usages):
            usage = self._usages[key]
            usage.tags = sorted(self._tags[key])
            result[key] = usage
        return result
