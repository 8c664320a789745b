"""Terminal status transitions shared by the webhook and polling paths.

Both delivery paths funnel through apply_terminal_status(), a conditional
update guarded on ``status == processing``. Whichever observer writes
first wins; the other's write is rejected by the guard and becomes a
no-op, so replays and concurrent delivery converge on one final state.
"""

from __future__ import annotations

import logging

from transcription_pipeline.asr.interface import (
    JobStatusReport,
    ProviderJobState,
    TranscriptionProvider,
)
from transcription_pipeline.asr.postprocess import flatten_transcript
from transcription_pipeline.jobs.models import Job, JobStatus
from transcription_pipeline.jobs.state import ensure_status_transition
from transcription_pipeline.storage.interface import JobStore
from transcription_pipeline.utils.errors import AuthenticationError, JobError
from transcription_pipeline.utils.retry import RetryExecutor

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Transcription provider reported failure"


async def apply_terminal_status(
    store: JobStore,
    job_id: str,
    status: JobStatus,
    transcription_text: str | None = None,
    error: str | None = None,
    retry: RetryExecutor | None = None,
) -> Job | None:
    """Move a processing job to a terminal status.

    Args:
        store: Job store to write through.
        job_id: Local job id.
        status: JobStatus.COMPLETED or JobStatus.ERROR.
        transcription_text: Flattened transcript (completed only).
        error: Failure description (error only).
        retry: Retry policy for the write (default persistence policy).

    Returns:
        The updated job, or None if the job was already terminal or absent.

    Raises:
        InvalidTransitionError: If ``status`` is not a terminal status.
        PersistenceError: If the write keeps failing after retries.
    """
    status = JobStatus(status)
    ensure_status_transition(JobStatus.PROCESSING, status, job_id=job_id)
    retry = retry or RetryExecutor.persistence()

    changes: dict[str, object] = {"status": status}
    if status is JobStatus.COMPLETED:
        changes["transcription_text"] = transcription_text or ""
    if error is not None:
        changes["error"] = error

    updated = await retry.run(
        store.update_job,
        job_id,
        changes,
        expected={"status": JobStatus.PROCESSING},
    )
    if updated is None:
        logger.info(
            "Skipped '%s' transition for job %s: not in processing state",
            status,
            job_id,
            extra={"job_id": job_id},
        )
    else:
        logger.info(
            "Job %s moved to '%s'",
            job_id,
            status,
            extra={"job_id": job_id, "external_job_id": updated.external_job_id},
        )
    return updated


async def complete_from_provider(
    provider: TranscriptionProvider,
    store: JobStore,
    job: Job,
    report: JobStatusReport,
    retry: RetryExecutor | None = None,
) -> Job | None:
    """Apply a terminal provider report to a job.

    On success the transcript is fetched and flattened before the job is
    completed. If the fetch fails the job is moved to error instead.

    Returns:
        The updated job, or None if the guard rejected the write.

    Raises:
        AuthenticationError: If the provider rejected our credentials
            (after recording the failure on the job).
    """
    retry = retry or RetryExecutor.persistence()

    if report.state is ProviderJobState.FAILED:
        return await apply_terminal_status(
            store,
            job.id,
            JobStatus.ERROR,
            error=report.failure_reason or DEFAULT_FAILURE_REASON,
            retry=retry,
        )

    if report.state is not ProviderJobState.SUCCEEDED:
        return None

    try:
        transcript = await retry.run(provider.fetch_transcript, report.external_job_id)
    except JobError as exc:
        logger.error(
            "Transcript fetch failed for job %s: %s",
            job.id,
            exc,
            extra={"job_id": job.id, "external_job_id": report.external_job_id},
        )
        updated = await apply_terminal_status(
            store, job.id, JobStatus.ERROR, error=str(exc), retry=retry
        )
        if isinstance(exc, AuthenticationError):
            raise
        return updated

    text = flatten_transcript(transcript)
    logger.info(
        "Transcript retrieved for job %s, length: %d chars",
        job.id,
        len(text),
        extra={"job_id": job.id, "external_job_id": report.external_job_id},
    )
    return await apply_terminal_status(
        store, job.id, JobStatus.COMPLETED, transcription_text=text, retry=retry
    )
