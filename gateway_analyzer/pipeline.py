"""Analysis job pipeline: parse, sort, detect, narrate, package, persist."""

import logging

from gateway_analyzer.detectors import run_detection
from gateway_analyzer.job_store import JobStore
from gateway_analyzer.models import AnalysisResult, count_severities, count_totals
from gateway_analyzer.narrative import NarrativeGenerator
from gateway_analyzer.parsers import parse_log_bytes, sort_records_by_timestamp

logger = logging.getLogger(__name__)

NO_VALID_LOGS_TEXT = "No valid logs found in the uploaded file."
FAILED_TEXT = "Processing failed. Please check the log format."
DEFAULT_MAX_FINDINGS = 100

__all__ = ["AnalysisPipeline", "run_detection", "run_pipeline"]


class AnalysisPipeline:
    def __init__(
        self,
        narrator: NarrativeGenerator | None = None,
        store: JobStore | None = None,
        burst_window_seconds: int = 60,
        max_findings: int = DEFAULT_MAX_FINDINGS,
    ) -> None:
        self._narrator = narrator or NarrativeGenerator()
        self._store = store
        self._burst_window_seconds = burst_window_seconds
        self._max_findings = max_findings

    @property
    def store(self) -> JobStore | None:
        return self._store

    def run(self, raw: bytes, job_id: str) -> AnalysisResult:
        """Analyze one uploaded log file.

        Parse or detection errors mark the job failed, persist it and re-raise.
        """
        result = AnalysisResult(job_id=job_id)
        logger.info("Processing job %s (%d bytes)", job_id, len(raw))

        try:
            report = parse_log_bytes(raw)
            if not report.records:
                result.complete(
                    total_logs=0,
                    anomalies=[],
                    timeline=NO_VALID_LOGS_TEXT,
                    summary=count_severities([]),
                )
                self._persist(result)
                return result

            records = sort_records_by_timestamp(report.records)
            findings = run_detection(records, burst_window_seconds=self._burst_window_seconds)
        except Exception:
            logger.exception("Processing error for job %s", job_id)
            result.fail(FAILED_TEXT)
            self._persist(result)
            raise

        timeline = self._narrator.summarize(findings, records)
        executive_summary = self._narrator.executive_summary(findings, len(records))

        result.complete(
            total_logs=len(records),
            anomalies=findings[:self._max_findings],
            timeline=timeline,
            summary=count_severities(findings),
            executive_summary=executive_summary,
            totals=count_totals(records),
        )
        logger.info(
            "Job %s complete: %d logs, %d anomalies (%d kept)",
            job_id, len(records), len(findings), len(result.anomalies),
        )
        self._persist(result)
        return result

    def get_result(self, job_id: str) -> AnalysisResult | None:
        if self._store is None:
            logger.info("No job store configured, cannot retrieve job %s", job_id)
            return None
        return self._store.get(job_id)

    def _persist(self, result: AnalysisResult) -> None:
        if self._store is None:
            return
        try:
            self._store.put(result)
        except Exception:
            logger.exception("Error storing results for job %s", result.job_id)

    def close(self) -> None:
        self._narrator.close()


def run_pipeline(raw: bytes, job_id: str, **kwargs) -> AnalysisResult:
    """Run a one-off job with the fallback narrator and no job store."""
    pipeline = AnalysisPipeline(**kwargs)
    try:
        return pipeline.run(raw, job_id)
    finally:
        pipeline.close()
