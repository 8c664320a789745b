"""Bounded status polling for jobs submitted without a webhook.

Polls the provider at most ``max_attempts`` times, sleeping
``delay_seconds`` between attempts (never after the last one), so the
total wait before a timeout is declared stays below
``max_attempts * delay_seconds``.
"""

from __future__ import annotations

import asyncio
import logging

from transcription_pipeline.asr.interface import TranscriptionProvider
from transcription_pipeline.jobs.models import Job, JobStatus
from transcription_pipeline.jobs.state import is_terminal_status
from transcription_pipeline.jobs.transitions import (
    apply_terminal_status,
    complete_from_provider,
)
from transcription_pipeline.storage.interface import JobStore
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    JobTimeoutError,
    UpstreamError,
    ValidationError,
)
from transcription_pipeline.utils.retry import RetryExecutor

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 30
DEFAULT_DELAY_SECONDS = 10.0


class StatusPoller:
    """Waits for a provider job to reach a terminal state.

    Args:
        provider: Transcription provider to poll.
        store: Job store receiving the terminal transition.
        max_attempts: Maximum number of status queries (default 30).
        delay_seconds: Fixed wait between queries (default 10s).
        retry: Retry policy for provider reads and store writes.
    """

    def __init__(
        self,
        provider: TranscriptionProvider,
        store: JobStore,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        retry: RetryExecutor | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.provider = provider
        self.store = store
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self.retry = retry or RetryExecutor.persistence()

    @property
    def max_wait_seconds(self) -> float:
        """Upper bound on time spent sleeping before a timeout."""
        return (self.max_attempts - 1) * self.delay_seconds

    async def wait_for_completion(self, job: Job) -> Job:
        """Poll until the job completes, fails, or attempts run out.

        Returns:
            The job in its terminal state.

        Raises:
            ValidationError: If the job has no external_job_id.
            UpstreamError: If the provider stays unreachable (job marked error).
            AuthenticationError: If the provider rejected our credentials
                (job marked error).
            JobTimeoutError: If attempts are exhausted (job marked error).
        """
        if is_terminal_status(job.status):
            return job
        if not job.external_job_id:
            raise ValidationError(
                "Cannot poll a job without an external_job_id",
                job_id=job.id,
                field="external_job_id",
            )

        external_job_id = job.external_job_id
        for attempt in range(1, self.max_attempts + 1):
            try:
                report = await self.retry.run(
                    self.provider.get_job_status, external_job_id
                )
            except (UpstreamError, AuthenticationError) as exc:
                logger.error(
                    "Status query failed for job %s: %s",
                    job.id,
                    exc,
                    extra={"job_id": job.id, "external_job_id": external_job_id},
                )
                await apply_terminal_status(
                    self.store, job.id, JobStatus.ERROR, error=str(exc), retry=self.retry
                )
                raise

            if report.is_terminal:
                logger.info(
                    "Provider job %s reached '%s' after %d attempts",
                    external_job_id,
                    report.raw_status,
                    attempt,
                    extra={"job_id": job.id, "external_job_id": external_job_id},
                )
                updated = await complete_from_provider(
                    self.provider, self.store, job, report, retry=self.retry
                )
                return updated or await self._reload(job)

            logger.debug(
                "Provider job %s still in progress (status: %s), attempt %d/%d",
                external_job_id,
                report.raw_status,
                attempt,
                self.max_attempts,
            )
            if attempt == self.max_attempts:
                break

            await asyncio.sleep(self.delay_seconds)

            # The webhook path may have finished the job while we slept
            current = await self._reload(job)
            if is_terminal_status(current.status):
                return current

        timeout = JobTimeoutError(
            f"Transcription timed out after {self.max_attempts} polling attempts",
            job_id=job.id,
            stage="transcription",
        )
        await apply_terminal_status(
            self.store, job.id, JobStatus.ERROR, error=timeout.args[0], retry=self.retry
        )
        raise timeout

    async def _reload(self, job: Job) -> Job:
        current = await self.retry.run(self.store.get_job, job.id)
        return current or job
