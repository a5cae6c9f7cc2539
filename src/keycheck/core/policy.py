"""Applies a PolicyConfig to a SnapshotDiff. Pure, no I/O."""

from keycheck.config import PolicyConfig
from keycheck.core.diff import SnapshotDiff
from keycheck.core.packages import WORKSPACE
from keycheck.models import (
    KeyRecord,
    KeyStatus,
    Severity,
    ValidationResult,
    ValidationSummary,
    Violation,
    ViolationType,
)


def _protected_hit(record: KeyRecord, protected: set[str]) -> list[str]:
    return sorted(protected.intersection(record.tags))


def _sources(record: KeyRecord) -> list[str]:
    return sorted(set(record.sources or ()))


def evaluate_policy(diff: SnapshotDiff, policy: PolicyConfig) -> ValidationResult:
    protected = set(policy.protected_tags)
    violations: list[Violation] = []
    warnings: list[str] = []
    flagged: set[str] = set()

    # Protected tags apply whatever the fail_on_* toggles say.
    for key in diff.lost:
        tags = _protected_hit(diff.baseline[key], protected)
        if tags:
            flagged.add(key)
            violations.append(
                Violation(
                    type=ViolationType.LOST,
                    key=key,
                    message=f"Protected key '{key}' ({', '.join(tags)}) was removed",
                    remediation=f"Restore '{key}' or remove its protected tag in the baseline after review",
                    policy="protected_tags",
                )
            )
    for old, new in diff.renamed:
        tags = _protected_hit(diff.baseline[old], protected)
        if tags:
            flagged.add(old)
            violations.append(
                Violation(
                    type=ViolationType.RENAMED,
                    key=old,
                    message=f"Protected key '{old}' ({', '.join(tags)}) appears renamed to '{new}'",
                    remediation=f"Keep the id '{old}' or update tests and the baseline together",
                    policy="protected_tags",
                )
            )

    for key in diff.lost:
        if key in flagged:
            continue
        if policy.fail_on_lost:
            violations.append(
                Violation(
                    type=ViolationType.LOST,
                    key=key,
                    message=f"Key '{key}' was removed",
                    remediation=f"Restore '{key}' or update the baseline if the removal is intended",
                    policy="fail_on_lost",
                )
            )
        else:
            warnings.append(f"Key '{key}' was removed")

    for old, new in diff.renamed:
        if old in flagged:
            continue
        if policy.fail_on_rename:
            violations.append(
                Violation(
                    type=ViolationType.RENAMED,
                    key=old,
                    message=f"Key '{old}' appears renamed to '{new}'",
                    remediation=f"Keep the id '{old}' or update the baseline if the rename is intended",
                    policy="fail_on_rename",
                )
            )
        else:
            warnings.append(f"Key '{old}' appears renamed to '{new}'")

    for key in diff.added:
        record = diff.current[key]
        if policy.fail_on_extra:
            violations.append(
                Violation(
                    type=ViolationType.EXTRA,
                    severity=Severity.WARNING,
                    key=key,
                    message=f"Key '{key}' is not in the baseline",
                    remediation="Add the key to the baseline or remove it",
                    policy="fail_on_extra",
                )
            )
        if not record.tags:
            warnings.append(f"New key '{key}' has no tags")

    deprecated = [key for key in diff.unchanged if diff.baseline[key].status == KeyStatus.DEPRECATED]
    warnings.extend(f"Deprecated key '{key}' is still in use" for key in deprecated)

    drift = diff.drift_percentage
    if drift > policy.max_drift:
        violations.append(
            Violation(
                type=ViolationType.THRESHOLD,
                message=f"Key drift {drift:.1f}% exceeds the maximum of {policy.max_drift:.1f}%",
                remediation="Review the changes and refresh the baseline, or raise max_drift",
                policy="max_drift",
            )
        )

    current = [diff.current[key] for key in sorted(diff.current)]
    if policy.fail_on_package_missing:
        for record in current:
            sources = _sources(record)
            if sources and WORKSPACE not in sources:
                violations.append(
                    Violation(
                        type=ViolationType.PACKAGE_MISSING,
                        key=record.id,
                        message=f"Key '{record.id}' is defined in {', '.join(sources)} but never used in the app",
                        remediation=f"Use '{record.id}' in the app or drop it from the package",
                        policy="fail_on_package_missing",
                    )
                )
    if policy.fail_on_collision:
        for record in current:
            sources = _sources(record)
            if len(sources) > 1:
                violations.append(
                    Violation(
                        type=ViolationType.COLLISION,
                        key=record.id,
                        message=f"Key '{record.id}' is declared in several sources: {', '.join(sources)}",
                        remediation="Give each package its own key namespace",
                        policy="fail_on_collision",
                    )
                )

    scanned = sorted({source for record in current for source in (record.sources or [WORKSPACE])})
    summary = ValidationSummary(
        total_keys=len(diff.current),
        lost_keys=len(diff.lost),
        added_keys=len(diff.added),
        renamed_keys=len(diff.renamed),
        drift_percentage=round(drift, 2),
        deprecated_in_use=len(deprecated),
    )
    return ValidationResult(summary=summary, violations=violations, warnings=warnings, scanned_packages=scanned)
