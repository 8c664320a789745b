"""Job submission: create the job row, then hand the audio to the provider.

The row is written before the provider call so a webhook can never arrive
for a job that does not exist yet. Duplicate-submission prevention is the
caller's concern; each call creates exactly one row.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from transcription_pipeline.asr.interface import TranscriptionProvider
from transcription_pipeline.jobs.models import Job, JobStatus
from transcription_pipeline.jobs.transitions import apply_terminal_status
from transcription_pipeline.storage.interface import JobStore
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    UpstreamError,
    ValidationError,
)
from transcription_pipeline.utils.retry import RetryExecutor

logger = logging.getLogger(__name__)


def _validate_submission(owner_id: str, media_url: str) -> None:
    if not owner_id or not isinstance(owner_id, str) or not owner_id.strip():
        raise ValidationError("Missing or invalid 'owner_id'", field="owner_id")
    if not media_url or not isinstance(media_url, str):
        raise ValidationError("Missing or invalid 'media_url'", field="media_url")
    parsed = urlparse(media_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(
            f"Invalid 'media_url': '{media_url}'. Must be an http(s) URL",
            field="media_url",
        )


class JobSubmitter:
    """Creates job rows and submits their audio for transcription.

    Args:
        provider: Transcription provider to submit to.
        store: Job store for the new row.
        callback_url: Webhook URL the provider should notify, if any.
        retry: Retry policy for store writes.
    """

    def __init__(
        self,
        provider: TranscriptionProvider,
        store: JobStore,
        callback_url: str | None = None,
        retry: RetryExecutor | None = None,
    ) -> None:
        self.provider = provider
        self.store = store
        self.callback_url = callback_url
        self.retry = retry or RetryExecutor.persistence()

    async def submit(
        self,
        owner_id: str,
        media_url: str,
        file_name: str | None = None,
        metadata: str | None = None,
        file_size: int | None = None,
        content_type: str | None = None,
    ) -> Job:
        """Create a job and submit its media to the provider.

        Args:
            owner_id: Submitting principal.
            media_url: URL of the audio to transcribe.
            file_name: Display name stored on the row (default: from the URL).
            metadata: Optional metadata passed through to the provider.
            file_size: Size in bytes, when the caller knows it.
            content_type: MIME type (default: guessed from the file name).

        Returns:
            The job: processing with external_job_id set on success, or
            error with the provider's reason on rejection.

        Raises:
            ValidationError: If owner_id or media_url is malformed.
            AuthenticationError: If the provider rejected our credentials.
            PersistenceError: If the row cannot be written.
        """
        _validate_submission(owner_id, media_url)

        job = Job.new(
            owner_id=owner_id,
            media_url=media_url,
            file_name=file_name,
            file_size=file_size,
            content_type=content_type,
        )
        job = await self.retry.run(self.store.create_job, job)
        logger.info(
            "Created job %s for owner %s",
            job.id,
            owner_id,
            extra={"job_id": job.id, "stage": "submit"},
        )

        try:
            submitted = await self.provider.submit_job(
                media_url, callback_url=self.callback_url, metadata=metadata
            )
        except (UpstreamError, AuthenticationError) as exc:
            logger.error(
                "Provider rejected job %s: %s",
                job.id,
                exc,
                extra={"job_id": job.id, "stage": "submit", "error": str(exc)},
            )
            failed = await apply_terminal_status(
                self.store, job.id, JobStatus.ERROR, error=str(exc), retry=self.retry
            )
            if isinstance(exc, AuthenticationError):
                raise
            return failed or await self._reload(job)

        # A webhook may already have bound this job via the fallback path;
        # only set the id while it is still empty.
        updated = await self.retry.run(
            self.store.update_job,
            job.id,
            {"external_job_id": submitted.external_job_id},
            expected={"external_job_id": None},
        )
        if updated is None:
            updated = await self._reload(job)
        logger.info(
            "Submitted job %s as provider job %s",
            job.id,
            submitted.external_job_id,
            extra={
                "job_id": job.id,
                "external_job_id": submitted.external_job_id,
                "stage": "submit",
            },
        )
        return updated

    async def _reload(self, job: Job) -> Job:
        current = await self.retry.run(self.store.get_job, job.id)
        return current or job
