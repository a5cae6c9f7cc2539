import json
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from keycheck.errors import SchemaMismatchError

SCHEMA_VERSION = "1.0"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class KeyStatus(str, Enum):
    FOUND = "found"
    LOST = "lost"
    RENAMED = "renamed"
    ADDED = "added"
    DEPRECATED = "deprecated"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class KeyLocation(WireModel):
    file: str
    line: int
    column: int
    detector: str
    context: str = "global"
    source: str = "workspace"


class HandlerLink(WireModel):
    type: str
    callback: str
    file: str
    offset: int


class KeyHit(WireModel):
    """One detection inside one file, as stored in the per-file cache payload."""

    id: str
    location: KeyLocation
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)


class LinkedHandler(WireModel):
    key: str
    link: HandlerLink


class ScanError(WireModel):
    file: str
    message: str
    type: str = "parse"


class FileAnalysis(WireModel):
    """Everything the scanner learned about a single file."""

    file: str
    content_hash: str
    source: str = "workspace"
    signature: str = ""
    hits: list[KeyHit] = Field(default_factory=list)
    handlers: list[LinkedHandler] = Field(default_factory=list)
    elements_total: int = 0
    elements_with_key: int = 0
    handlers_total: int = 0
    handlers_linked: int = 0
    detector_hits: dict[str, int] = Field(default_factory=dict)
    uncovered_elements: list[str] = Field(default_factory=list)
    warnings: list[ScanError] = Field(default_factory=list)


class KeyUsage(WireModel):
    id: str
    locations: list[KeyLocation] = Field(default_factory=list)
    handlers: list[HandlerLink] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    status: KeyStatus = KeyStatus.FOUND

    @property
    def sources(self) -> list[str]:
        return sorted({location.source for location in self.locations})


def _ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


class ScanMetrics(WireModel):
    total_files: int = 0
    scanned_files: int = 0
    parse_errors: int = 0
    elements_total: int = 0
    elements_with_key: int = 0
    handlers_total: int = 0
    handlers_linked: int = 0
    detector_hits: dict[str, int] = Field(default_factory=dict)
    cache_hits: int = 0
    cache_misses: int = 0
    truncated: bool = False
    incremental_base: str | None = None
    errors: list[ScanError] = Field(default_factory=list)

    @property
    def file_coverage(self) -> float:
        return _ratio(self.scanned_files, self.total_files)

    @property
    def element_coverage(self) -> float:
        return _ratio(self.elements_with_key, self.elements_total)

    @property
    def handler_coverage(self) -> float:
        return _ratio(self.handlers_linked, self.handlers_total)

    @property
    def parse_success_rate(self) -> float:
        return _ratio(self.scanned_files, self.scanned_files + self.parse_errors)

    @property
    def cache_hit_rate(self) -> float:
        return _ratio(self.cache_hits, self.cache_hits + self.cache_misses)


class BlindSpot(WireModel):
    type: str
    location: str
    severity: Severity = Severity.INFO
    message: str


class SnapshotSummary(WireModel):
    total_files: int
    scanned_files: int
    total_keys: int
    file_coverage: float
    element_coverage: float
    handler_coverage: float


class KeyRecord(WireModel):
    id: str
    tags: list[str] = Field(default_factory=list)
    status: KeyStatus = KeyStatus.FOUND
    location_count: int = 0
    locations: list[KeyLocation] | None = None
    sources: list[str] | None = None


class Snapshot(WireModel):
    schema_version: str = SCHEMA_VERSION
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    summary: SnapshotSummary
    keys: list[KeyRecord] = Field(default_factory=list)
    blind_spots: list[BlindSpot] | None = None
    errors: list[ScanError] | None = None

    @classmethod
    def from_json(cls, text: str | bytes, role: str = "snapshot") -> "Snapshot":
        """Parse a snapshot, checking schemaVersion before anything else."""
        data = json.loads(text)
        found = data.get("schemaVersion") if isinstance(data, dict) else None
        if found != SCHEMA_VERSION:
            raise SchemaMismatchError(SCHEMA_VERSION, str(found), role)
        return cls.model_validate(data)

    def key_map(self) -> dict[str, KeyRecord]:
        return {record.id: record for record in self.keys}


class ScanResult(WireModel):
    keys: dict[str, KeyUsage] = Field(default_factory=dict)
    metrics: ScanMetrics = Field(default_factory=ScanMetrics)
    blind_spots: list[BlindSpot] = Field(default_factory=list)
    files: list[FileAnalysis] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def truncated(self) -> bool:
        return self.metrics.truncated

    def to_snapshot(
        self,
        *,
        include_locations: bool = True,
        timestamp: datetime | None = None,
    ) -> Snapshot:
        records = [
            KeyRecord(
                id=usage.id,
                tags=sorted(usage.tags),
                status=usage.status,
                location_count=len(usage.locations),
                locations=list(usage.locations) if include_locations else None,
                sources=usage.sources,
            )
            for usage in sorted(self.keys.values(), key=lambda usage: usage.id)
        ]
        summary = SnapshotSummary(
            total_files=self.metrics.total_files,
            scanned_files=self.metrics.scanned_files,
            total_keys=len(records),
            file_coverage=round(self.metrics.file_coverage, 4),
            element_coverage=round(self.metrics.element_coverage, 4),
            handler_coverage=round(self.metrics.handler_coverage, 4),
        )
        return Snapshot(
            timestamp=timestamp or datetime.now(timezone.utc),
            summary=summary,
            keys=records,
            blind_spots=list(self.blind_spots) or None,
            errors=list(self.metrics.errors) or None,
        )


class ViolationType(str, Enum):
    LOST = "lost"
    RENAMED = "renamed"
    EXTRA = "extra"
    PACKAGE_MISSING = "package-missing"
    COLLISION = "collision"
    THRESHOLD = "threshold"


class Violation(WireModel):
    type: ViolationType
    severity: Severity = Severity.ERROR
    key: str | None = None
    message: str
    remediation: str
    policy: str


class ValidationSummary(WireModel):
    total_keys: int = 0
    lost_keys: int = 0
    added_keys: int = 0
    renamed_keys: int = 0
    drift_percentage: float = 0.0
    deprecated_in_use: int = 0


class ValidationResult(WireModel):
    summary: ValidationSummary
    violations: list[Violation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    scanned_packages: list[str] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.violations
