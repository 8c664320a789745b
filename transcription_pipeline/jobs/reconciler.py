"""Webhook reconciliation: bind provider notifications to job rows.

Lookup order for a notification's provider job id:

1. exact match on external_job_id
2. case-insensitive match
3. fallback: the most recent non-terminal job in the same context
   (owner, when known), preferring jobs not yet bound to any provider id.
   The job's external_job_id is backfilled so later deliveries match
   exactly.

Step 3 is a degraded-mode heuristic. It cannot tell apart two in-flight
jobs of the same owner, so every fallback binding is logged at WARNING.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

from transcription_pipeline.asr.interface import (
    JobStatusReport,
    ProviderJobState,
    TranscriptionProvider,
)
from transcription_pipeline.asr.rev_ai import classify_status
from transcription_pipeline.jobs.models import Job, JobStatus
from transcription_pipeline.jobs.state import is_terminal_status
from transcription_pipeline.jobs.transitions import complete_from_provider
from transcription_pipeline.storage.interface import JobStore
from transcription_pipeline.utils.errors import NotFoundError, ValidationError
from transcription_pipeline.utils.retry import RetryExecutor

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Rev AI job failed"

MatchKind = Literal["exact", "case_insensitive", "fallback"]
Outcome = Literal["completed", "error", "ignored", "acknowledged"]


@dataclass
class WebhookNotification:
    """Validated provider notification deserialized from a webhook body."""

    external_job_id: str
    raw_status: str
    failure_reason: str | None = None

    @property
    def state(self) -> ProviderJobState:
        return classify_status(self.raw_status)

    @classmethod
    def from_payload(cls, payload: Any) -> WebhookNotification:
        """Deserialize and validate a webhook body ``{"job": {...}}``.

        Raises:
            ValidationError: If the job object or its id is missing.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Webhook payload must be a JSON object")
        job = payload.get("job")
        if not isinstance(job, dict):
            raise ValidationError("Missing 'job' object in webhook payload", field="job")

        external_job_id = job.get("id")
        if not external_job_id or not isinstance(external_job_id, str):
            raise ValidationError("No job ID in webhook payload", field="job.id")

        raw_status = job.get("status") or ""
        if not isinstance(raw_status, str):
            raise ValidationError("Invalid 'status' in webhook payload", field="job.status")

        failure_reason = job.get("failure_detail") or job.get("failure") or None
        return cls(
            external_job_id=external_job_id,
            raw_status=raw_status,
            failure_reason=failure_reason,
        )


@dataclass
class ReconcileResult:
    """What a webhook delivery did to its job."""

    job: Job
    outcome: Outcome
    matched_by: MatchKind


class WebhookReconciler:
    """Applies provider notifications to job rows.

    Safe under at-least-once delivery: a notification for a job that is
    already terminal is ignored.

    Args:
        provider: Provider used to fetch finished transcripts.
        store: Job store.
        retry: Retry policy for provider reads and store writes.
        on_completed: Optional async callback invoked with each job this
            reconciler moves to completed.
    """

    def __init__(
        self,
        provider: TranscriptionProvider,
        store: JobStore,
        retry: RetryExecutor | None = None,
        on_completed: Callable[[Job], Awaitable[Any]] | None = None,
    ) -> None:
        self.provider = provider
        self.store = store
        self.retry = retry or RetryExecutor.persistence()
        self.on_completed = on_completed

    async def handle_payload(
        self, payload: Any, owner_id: str | None = None
    ) -> ReconcileResult:
        return await self.handle(WebhookNotification.from_payload(payload), owner_id)

    async def handle(
        self,
        notification: WebhookNotification,
        owner_id: str | None = None,
    ) -> ReconcileResult:
        """Bind a notification to a job and apply its status.

        Args:
            notification: The validated notification.
            owner_id: Context used to narrow the fallback match, if known.

        Returns:
            ReconcileResult describing the job and what happened to it.

        Raises:
            NotFoundError: If no job can be bound, even by fallback.
            PersistenceError: If a store write keeps failing.
        """
        external_job_id = notification.external_job_id
        job, matched_by = await self._match(external_job_id, owner_id)
        log_extra = {"job_id": job.id, "external_job_id": external_job_id}

        if is_terminal_status(job.status):
            logger.info(
                "Job %s already '%s', ignoring '%s' notification",
                job.id,
                job.status,
                notification.raw_status,
                extra=log_extra,
            )
            return ReconcileResult(job=job, outcome="ignored", matched_by=matched_by)

        state = notification.state
        if state is ProviderJobState.IN_PROGRESS:
            logger.info(
                "Provider job %s status: %s",
                external_job_id,
                notification.raw_status,
                extra=log_extra,
            )
            return ReconcileResult(job=job, outcome="acknowledged", matched_by=matched_by)

        report = JobStatusReport(
            external_job_id=external_job_id,
            state=state,
            raw_status=notification.raw_status,
            failure_reason=notification.failure_reason or DEFAULT_FAILURE_REASON,
        )
        updated = await complete_from_provider(
            self.provider, self.store, job, report, retry=self.retry
        )
        if updated is None:
            current = await self.retry.run(self.store.get_job, job.id)
            return ReconcileResult(
                job=current or job, outcome="ignored", matched_by=matched_by
            )

        if updated.status is JobStatus.COMPLETED:
            await self._notify_completed(updated)
            return ReconcileResult(job=updated, outcome="completed", matched_by=matched_by)
        return ReconcileResult(job=updated, outcome="error", matched_by=matched_by)

    async def _match(
        self, external_job_id: str, owner_id: str | None
    ) -> tuple[Job, MatchKind]:
        exact = await self.retry.run(self.store.find_by_external_id, external_job_id)
        if exact:
            if len(exact) > 1:
                logger.warning(
                    "%d jobs share provider job id %s, using the newest",
                    len(exact),
                    external_job_id,
                    extra={"external_job_id": external_job_id},
                )
            return exact[0], "exact"

        folded = await self.retry.run(
            self.store.find_by_external_id, external_job_id, case_insensitive=True
        )
        if folded:
            logger.info(
                "Matched provider job %s case-insensitively to job %s",
                external_job_id,
                folded[0].id,
                extra={"job_id": folded[0].id, "external_job_id": external_job_id},
            )
            return folded[0], "case_insensitive"

        candidate = await self.retry.run(
            self.store.find_latest_unresolved, owner_id, unbound_only=True
        )
        if candidate is None:
            candidate = await self.retry.run(self.store.find_latest_unresolved, owner_id)
        if candidate is None:
            raise NotFoundError(
                f"No job matches provider job id '{external_job_id}'",
                external_job_id=external_job_id,
            )

        logger.warning(
            "Fallback binding of provider job %s to job %s (previous id: %s)",
            external_job_id,
            candidate.id,
            candidate.external_job_id,
            extra={"job_id": candidate.id, "external_job_id": external_job_id},
        )
        bound = await self.retry.run(
            self.store.update_job,
            candidate.id,
            {"external_job_id": external_job_id},
            expected={"status": JobStatus.PROCESSING},
        )
        if bound is None:
            bound = await self.retry.run(self.store.get_job, candidate.id) or candidate
        return bound, "fallback"

    async def _notify_completed(self, job: Job) -> None:
        if self.on_completed is None:
            return
        try:
            await self.on_completed(job)
        except Exception:
            logger.error(
                "Completion callback failed for job %s",
                job.id,
                exc_info=True,
                extra={"job_id": job.id},
            )
