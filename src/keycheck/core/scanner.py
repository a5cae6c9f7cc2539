import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from keycheck.cache import ScanCache, content_hash
from keycheck.config import ScanConfig
from keycheck.core.aggregate import KeyUsageAggregator
from keycheck.core.analyzer import ElementHeuristic, FileAnalyzer
from keycheck.core.coverage import find_blind_spots
from keycheck.core.detectors import DetectorPipeline, build_pipeline
from keycheck.core.sources import SourceFile, SourceSet
from keycheck.errors import InternalError, ParseError
from keycheck.models import FileAnalysis, ScanError, ScanMetrics, ScanResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileOutcome:
    file: SourceFile
    analysis: FileAnalysis | None = None
    error: ScanError | None = None
    cache_hit: bool = False
    skipped: bool = False


class Scanner:
    def __init__(
        self,
        config: ScanConfig,
        *,
        cache: ScanCache | None = None,
        pipeline: DetectorPipeline | None = None,
        workers: int | None = None,
    ) -> None:
        self.config = config
        self.pipeline = pipeline or build_pipeline(config)
        self.analyzer = FileAnalyzer(
            self.pipeline,
            ElementHeuristic.from_config(config),
            tolerate_syntax_errors=config.tolerate_syntax_errors,
        )
        self.cache = cache
        self.workers = workers or config.workers or os.cpu_count() or 1

    def scan_file(self, source_file: SourceFile) -> FileOutcome:
        relative = source_file.relative_path
        try:
            data = source_file.path.read_bytes()
        except OSError as exc:
            return FileOutcome(source_file, error=ScanError(file=relative, message=str(exc), type="io"))

        digest = content_hash(data)
        if self.cache is not None:
            cached = self.cache.get(relative, digest, self.analyzer.signature)
            if cached is not None:
                return FileOutcome(source_file, analysis=cached, cache_hit=True)

        try:
            analysis = self.analyzer.analyze(data, relative, digest, source_file.source)
        except ParseError as exc:
            logger.debug("Parse error in %s: %s", relative, exc)
            return FileOutcome(source_file, error=ScanError(file=relative, message=str(exc), type=exc.error_type))
        except Exception as exc:
            raise InternalError(str(exc), operation="analyze", file=relative) from exc

        if self.cache is not None:
            self.cache.put(relative, digest, analysis)
        return FileOutcome(source_file, analysis=analysis)

    def scan(
        self,
        sources: SourceSet,
        *,
        cancel: threading.Event | None = None,
        deadline: float | None = None,
    ) -> ScanResult:
        """Scan every file of the source set.

        `deadline` is a time.monotonic() value. Cancellation is checked between
        files; files not started by then are skipped and the result is truncated.
        """
        started = time.monotonic()

        def should_stop() -> bool:
            if cancel is not None and cancel.is_set():
                return True
            return deadline is not None and time.monotonic() >= deadline

        def work(source_file: SourceFile) -> FileOutcome:
            if should_stop():
                return FileOutcome(source_file, skipped=True)
            return self.scan_file(source_file)

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="keycheck-scan") as pool:
            outcomes = list(pool.map(work, sources.files))

        if self.cache is not None:
            self.cache.flush()

        result = self._merge(sources, outcomes)
        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Scanned %d/%d files, %d keys, %d parse errors%s",
            result.metrics.scanned_files,
            result.metrics.total_files,
            len(result.keys),
            result.metrics.parse_errors,
            " (truncated)" if result.truncated else "",
        )
        return result

    def _merge(self, sources: SourceSet, outcomes: list[FileOutcome]) -> ScanResult:
        metrics = ScanMetrics(
            total_files=len(sources),
            incremental_base=sources.incremental_base,
            detector_hits={name: 0 for name in self.pipeline.names},
        )
        aggregator = KeyUsageAggregator()
        analyses = []

        # outcomes arrive in source-set order, which is sorted by path
        for outcome in outcomes:
            if outcome.skipped:
                metrics.truncated = True
                continue
            if outcome.cache_hit:
                metrics.cache_hits += 1
            elif self.cache is not None:
                metrics.cache_misses += 1
            if outcome.error is not None:
                metrics.parse_errors += 1
                metrics.errors.append(outcome.error)
                continue
            analysis = outcome.analysis
            if analysis is None:
                continue

            metrics.scanned_files += 1
            metrics.elements_total += analysis.elements_total
            metrics.elements_with_key += analysis.elements_with_key
            metrics.handlers_total += analysis.handlers_total
            metrics.handlers_linked += analysis.handlers_linked
            for name, count in analysis.detector_hits.items():
                metrics.detector_hits[name] = metrics.detector_hits.get(name, 0) + count
            metrics.errors.extend(analysis.warnings)
            aggregator.add(analysis)
            analyses.append(analysis)

        return ScanResult(
            keys=aggregator.usages(),
            metrics=metrics,
            blind_spots=find_blind_spots(analyses, metrics, self.config.ui_heavy_threshold),
            files=analyses,
        )
