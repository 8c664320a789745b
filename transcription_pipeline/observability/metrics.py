"""Job metrics collection and reporting.

Provides the JobMetrics and SummaryMetrics dataclasses, the StageTimer context manager for
measuring stage durations, and log_job_metrics() for emitting metrics as a
single structured JSON line to stdout.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime


@dataclass
class JobMetrics:
    """Metrics collected for one analysis run of a job."""

    job_id: str
    owner_id: str
    status: str
    analysis_status: str
    external_job_id: str | None = None
    transcript_chars: int = 0
    chunk_count: int = 0
    dropped_chunks: list[int] = field(default_factory=list)
    analysis_duration_seconds: float = 0.0
    placeholder_transcript: bool = False
    error_message: str | None = None


@dataclass
class SummaryMetrics:
    """Metrics collected for one summary run of a job."""

    job_id: str
    owner_id: str
    summary_status: str
    transcript_chars: int = 0
    summary_chars: int = 0
    summary_duration_seconds: float = 0.0
    error_message: str | None = None


class StageTimer:
    """Context manager that records wall-clock duration of a stage.

    Usage:
        timer = StageTimer("analysis")
        with timer:
            await do_work()
        print(timer.duration_seconds)
    """

    def __init__(self, stage_name: str) -> None:
        self.stage_name = stage_name
        self.start_time: datetime | None = None
        self.end_time: datetime | None = None
        self.duration_seconds: float = 0.0
        self._mono_start: float = 0.0

    def __enter__(self) -> StageTimer:
        self.start_time = datetime.now(UTC)
        self._mono_start = time.monotonic()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.duration_seconds = time.monotonic() - self._mono_start
        self.end_time = datetime.now(UTC)


def log_job_metrics(metrics: JobMetrics | SummaryMetrics) -> None:
    """Emit job metrics as a single structured JSON line to stdout.

    Args:
        metrics: Populated JobMetrics (metric_type job_analysis) or
            SummaryMetrics (metric_type job_summary).
    """
    metric_type = "job_summary" if isinstance(metrics, SummaryMetrics) else "job_analysis"
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "severity": "INFO",
        "metric_type": metric_type,
        **asdict(metrics),
    }
    print(json.dumps(entry))
