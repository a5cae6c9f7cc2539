from collections.abc import Iterable

from keycheck.models import BlindSpot, FileAnalysis, ScanMetrics, Severity

UI_HEAVY_UNTESTED = "ui_heavy_untested"
INEFFECTIVE_DETECTOR = "ineffective_detector"


def find_blind_spots(
    analyses: Iterable[FileAnalysis],
    metrics: ScanMetrics,
    ui_heavy_threshold: int = 5,
) -> list[BlindSpot]:
    """Informational findings only; none of these fail a scan."""
    spots = []
    for analysis in analyses:
        if analysis.elements_total > ui_heavy_threshold and not analysis.hits:
            preview = ", ".join(analysis.uncovered_elements[:5])
            spots.append(
                BlindSpot(
                    type=UI_HEAVY_UNTESTED,
                    location=analysis.file,
                    severity=Severity.WARNING,
                    message=(
                        f"{analysis.elements_total} UI elements and no keys"
                        + (f" (e.g. {preview})" if preview else "")
                    ),
                )
            )
    for name, hits in sorted(metrics.detector_hits.items()):
        if hits == 0:
            spots.append(
                BlindSpot(
                    type=INEFFECTIVE_DETECTOR,
                    location=f"detector:{name}",
                    severity=Severity.INFO,
                    message=f"Detector '{name}' found no keys in {metrics.scanned_files} scanned files",
                )
            )
    return spots
