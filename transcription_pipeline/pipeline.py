"""Job orchestration: submit -> poll -> analyze, and analyze-after-webhook.

JobPipeline ties the components together. ``analyze_job()`` is the entry
point after any transcription completes (webhook or poll), and
``summarize_job()`` produces the plain-text summary on request.
``process()`` is the end-to-end path for deployments without a webhook.
"""

from __future__ import annotations

import logging

from transcription_pipeline.analysis.analyzer import ChunkedAnalyzer
from transcription_pipeline.analysis.interface import AnalysisResult
from transcription_pipeline.analysis.summarizer import TranscriptSummarizer
from transcription_pipeline.jobs.models import AnalysisStatus, Job, JobStatus
from transcription_pipeline.jobs.poller import StatusPoller
from transcription_pipeline.jobs.state import (
    ensure_analysis_transition,
    is_terminal_analysis_status,
)
from transcription_pipeline.jobs.submitter import JobSubmitter
from transcription_pipeline.observability.metrics import (
    JobMetrics,
    StageTimer,
    SummaryMetrics,
    log_job_metrics,
)
from transcription_pipeline.storage.interface import JobStore
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    ConfigurationError,
    JobError,
    NotFoundError,
    ValidationError,
)
from transcription_pipeline.utils.retry import RetryExecutor

logger = logging.getLogger(__name__)

MIN_TRANSCRIPT_CHARS = 50

# Status text written into transcription_text while a job is in flight
PROCESSING_PHRASES: tuple[str, ...] = (
    "processing your audio",
    "processing audio file",
    "being processed",
    "may take several minutes",
    "using rev.ai",
    "transcription in progress",
)


def is_placeholder_transcript(text: str | None) -> bool:
    """True for empty, very short, or "still processing" status text."""
    if not text or len(text) < MIN_TRANSCRIPT_CHARS:
        return True
    lowered = text.lower()
    return any(phrase in lowered for phrase in PROCESSING_PHRASES)


def placeholder_analysis() -> AnalysisResult:
    return AnalysisResult(
        topics=["Processing"],
        key_insights=["Waiting for complete transcription"],
        sentiment="neutral",
        tone_analysis="This appears to be a processing message, not actual content",
        sentiment_explanation="This is a system message, not actual conversation content",
    )


class JobPipeline:
    """Orchestrates a job from submission to stored analysis.

    Args:
        store: Job store.
        analyzer: Chunked analyzer for completed transcripts.
        submitter: Job submitter, required only for process().
        poller: Status poller, required only for process().
        retry: Retry policy for store reads and writes.
        summarizer: Transcript summarizer, required only for summarize_job().
    """

    def __init__(
        self,
        store: JobStore,
        analyzer: ChunkedAnalyzer,
        submitter: JobSubmitter | None = None,
        poller: StatusPoller | None = None,
        retry: RetryExecutor | None = None,
        summarizer: TranscriptSummarizer | None = None,
    ) -> None:
        self.store = store
        self.summarizer = summarizer
        self.analyzer = analyzer
        self.submitter = submitter
        self.poller = poller
        self.retry = retry or RetryExecutor.persistence()

    async def analyze_job(self, job_id: str) -> Job:
        """Analyze a completed job's transcript and store the result.

        Returns:
            The job with analysis_status completed or error. A job whose
            analysis is already terminal, or claimed by another worker, is
            returned unchanged.

        Raises:
            NotFoundError: If the job does not exist.
            ValidationError: If the transcription has not completed.
            AuthenticationError: If the analysis engine rejected our
                credentials (after recording the failure on the job).
            PersistenceError: If the result cannot be stored.
        """
        job = await self.retry.run(self.store.get_job, job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", job_id=job_id)
        if job.status is not JobStatus.COMPLETED:
            raise ValidationError(
                f"Transcription is '{job.status}', analysis requires 'completed'",
                job_id=job_id,
                field="status",
            )
        if is_terminal_analysis_status(job.analysis_status):
            return job
        if job.analysis_status is AnalysisStatus.PROCESSING:
            logger.info(
                "Analysis already in progress for job %s",
                job_id,
                extra={"job_id": job_id, "stage": "analysis"},
            )
            return job

        ensure_analysis_transition(
            job.status, job.analysis_status, AnalysisStatus.PROCESSING, job_id=job_id
        )
        claimed = await self.retry.run(
            self.store.update_job,
            job_id,
            {"analysis_status": AnalysisStatus.PROCESSING},
            expected={
                "status": JobStatus.COMPLETED,
                "analysis_status": AnalysisStatus.PENDING,
            },
        )
        if claimed is None:
            return await self._reload(job)

        text = claimed.transcription_text
        placeholder = is_placeholder_transcript(text)
        metrics = JobMetrics(
            job_id=job_id,
            owner_id=claimed.owner_id,
            status=str(claimed.status),
            analysis_status=str(AnalysisStatus.PROCESSING),
            external_job_id=claimed.external_job_id,
            transcript_chars=len(text or ""),
            placeholder_transcript=placeholder,
        )

        timer = StageTimer("analysis")
        try:
            with timer:
                if placeholder:
                    logger.info(
                        "Transcript for job %s is a processing message, "
                        "storing placeholder analysis",
                        job_id,
                        extra={"job_id": job_id, "stage": "analysis"},
                    )
                    result = placeholder_analysis()
                else:
                    result = await self.analyzer.analyze(text, job_id=job_id)
        except JobError as exc:
            message = exc.args[0] if exc.args else str(exc)
            logger.error(
                "Analysis failed for job %s: %s",
                job_id,
                message,
                extra={
                    "job_id": job_id,
                    "stage": "analysis",
                    "duration_seconds": timer.duration_seconds,
                    "error": message,
                },
            )
            failed = await self._finish(job_id, AnalysisStatus.ERROR, error=message)
            metrics.analysis_status = str(AnalysisStatus.ERROR)
            metrics.analysis_duration_seconds = timer.duration_seconds
            metrics.error_message = message
            log_job_metrics(metrics)
            if isinstance(exc, AuthenticationError):
                raise
            return failed or await self._reload(claimed)

        done = await self._finish(
            job_id, AnalysisStatus.COMPLETED, analysis_data=result.to_dict()
        )
        logger.info(
            "Analysis completed for job %s",
            job_id,
            extra={
                "job_id": job_id,
                "stage": "analysis",
                "duration_seconds": round(timer.duration_seconds, 3),
            },
        )
        metrics.analysis_status = str(AnalysisStatus.COMPLETED)
        metrics.analysis_duration_seconds = timer.duration_seconds
        metrics.chunk_count = 0 if placeholder else result.chunk_count
        metrics.dropped_chunks = list(result.dropped_chunks)
        log_job_metrics(metrics)
        return done or await self._reload(claimed)

    async def summarize_job(self, job_id: str) -> Job:
        """Summarize a completed job's transcript and store the summary.

        Returns:
            The job with summary_status completed or error. A job whose
            summary is already terminal, or claimed by another worker, is
            returned unchanged.

        Raises:
            ConfigurationError: If no summarizer was configured.
            NotFoundError: If the job does not exist.
            ValidationError: If the transcription has not completed or its
                text is empty.
            AuthenticationError: If the engine rejected our credentials
                (after recording the failure on the job).
            PersistenceError: If the result cannot be stored.
        """
        if self.summarizer is None:
            raise ConfigurationError("summarize_job() requires a summarizer")

        job = await self.retry.run(self.store.get_job, job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found", job_id=job_id)
        if is_terminal_analysis_status(job.summary_status):
            return job
        if job.summary_status is AnalysisStatus.PROCESSING:
            logger.info(
                "Summary already in progress for job %s",
                job_id,
                extra={"job_id": job_id, "stage": "summary"},
            )
            return job
        if job.status is not JobStatus.COMPLETED:
            raise ValidationError(
                f"Transcription is '{job.status}', summary requires 'completed'",
                job_id=job_id,
                field="status",
            )
        if not job.transcription_text.strip():
            raise ValidationError(
                "Transcription text is empty", job_id=job_id, field="transcription_text"
            )

        ensure_analysis_transition(
            job.status,
            job.summary_status,
            AnalysisStatus.PROCESSING,
            job_id=job_id,
            column="summary_status",
        )
        claimed = await self.retry.run(
            self.store.update_job,
            job_id,
            {"summary_status": AnalysisStatus.PROCESSING},
            expected={
                "status": JobStatus.COMPLETED,
                "summary_status": AnalysisStatus.PENDING,
            },
        )
        if claimed is None:
            return await self._reload(job)

        metrics = SummaryMetrics(
            job_id=job_id,
            owner_id=claimed.owner_id,
            summary_status=str(AnalysisStatus.PROCESSING),
            transcript_chars=len(claimed.transcription_text),
        )
        timer = StageTimer("summary")
        try:
            with timer:
                summary = await self.summarizer.summarize(
                    claimed.transcription_text, job_id=job_id
                )
        except JobError as exc:
            message = exc.args[0] if exc.args else str(exc)
            logger.error(
                "Summary failed for job %s: %s",
                job_id,
                message,
                extra={
                    "job_id": job_id,
                    "stage": "summary",
                    "duration_seconds": timer.duration_seconds,
                    "error": message,
                },
            )
            failed = await self._finish_stage(
                job_id, "summary_status", AnalysisStatus.ERROR, {"error": message}
            )
            metrics.summary_status = str(AnalysisStatus.ERROR)
            metrics.summary_duration_seconds = timer.duration_seconds
            metrics.error_message = message
            log_job_metrics(metrics)
            if isinstance(exc, AuthenticationError):
                raise
            return failed or await self._reload(claimed)

        done = await self._finish_stage(
            job_id, "summary_status", AnalysisStatus.COMPLETED, {"summary_text": summary}
        )
        logger.info(
            "Summary completed for job %s (%d chars)",
            job_id,
            len(summary),
            extra={
                "job_id": job_id,
                "stage": "summary",
                "duration_seconds": round(timer.duration_seconds, 3),
            },
        )
        metrics.summary_status = str(AnalysisStatus.COMPLETED)
        metrics.summary_chars = len(summary)
        metrics.summary_duration_seconds = timer.duration_seconds
        log_job_metrics(metrics)
        return done or await self._reload(claimed)

    async def process(
        self,
        owner_id: str,
        media_url: str,
        file_name: str | None = None,
        metadata: str | None = None,
    ) -> Job:
        """Submit, wait for the transcript, and analyze it.

        Provider failures and polling timeouts are recorded on the job and
        the job is returned in its error state.

        Raises:
            ConfigurationError: If no submitter or poller was configured.
            ValidationError: If the submission is malformed.
            AuthenticationError: If a provider rejected our credentials.
        """
        if self.submitter is None or self.poller is None:
            raise ConfigurationError("process() requires a submitter and a poller")

        job = await self.submitter.submit(
            owner_id, media_url, file_name=file_name, metadata=metadata
        )
        if job.status is JobStatus.ERROR:
            return job

        try:
            job = await self.poller.wait_for_completion(job)
        except (AuthenticationError, ValidationError):
            raise
        except JobError as exc:
            logger.error(
                "Transcription did not complete for job %s: %s",
                job.id,
                exc,
                extra={"job_id": job.id, "stage": "transcription", "error": str(exc)},
            )
            return await self._reload(job)

        if job.status is not JobStatus.COMPLETED:
            return job
        return await self.analyze_job(job.id)

    async def _finish(
        self,
        job_id: str,
        status: AnalysisStatus,
        analysis_data: dict | None = None,
        error: str | None = None,
    ) -> Job | None:
        changes: dict[str, object] = {}
        if analysis_data is not None:
            changes["analysis_data"] = analysis_data
        if error is not None:
            changes["error"] = error
        return await self._finish_stage(job_id, "analysis_status", status, changes)

    async def _finish_stage(
        self,
        job_id: str,
        column: str,
        status: AnalysisStatus,
        changes: dict[str, object],
    ) -> Job | None:
        """Move ``column`` from processing to ``status``; None if we lost the claim."""
        return await self.retry.run(
            self.store.update_job,
            job_id,
            {column: status, **changes},
            expected={column: AnalysisStatus.PROCESSING},
        )

    async def _reload(self, job: Job) -> Job:
        current = await self.retry.run(self.store.get_job, job.id)
        return current or job
