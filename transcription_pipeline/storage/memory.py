"""In-process job store.

Keeps rows in a dict guarded by an asyncio.Lock so conditional updates are
atomic with respect to other coroutines. Used for local runs and tests.
"""

from __future__ import annotations

import asyncio
from typing import Any

from transcription_pipeline.jobs.models import Job, JobStatus, utc_now
from transcription_pipeline.storage.interface import JobStore


class InMemoryJobStore(JobStore):
    """Dict-backed JobStore with compare-and-set updates."""

    def __init__(self, jobs: list[Job] | None = None) -> None:
        self._jobs: dict[str, Job] = {job.id: job for job in jobs or []}
        self._lock = asyncio.Lock()

    async def create_job(self, job: Job) -> Job:
        async with self._lock:
            self._jobs[job.id] = job.with_changes()
            return job.with_changes()

    async def get_job(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.with_changes() if job else None

    async def find_by_external_id(
        self, external_job_id: str, case_insensitive: bool = False
    ) -> list[Job]:
        if case_insensitive:
            needle = external_job_id.lower()
            matches = [
                job
                for job in self._jobs.values()
                if job.external_job_id and job.external_job_id.lower() == needle
            ]
        else:
            matches = [
                job
                for job in self._jobs.values()
                if job.external_job_id == external_job_id
            ]
        matches.sort(key=lambda job: job.created_at, reverse=True)
        return [job.with_changes() for job in matches]

    async def find_latest_unresolved(
        self, owner_id: str | None = None, unbound_only: bool = False
    ) -> Job | None:
        candidates = [
            job
            for job in self._jobs.values()
            if job.status is JobStatus.PROCESSING
            and (owner_id is None or job.owner_id == owner_id)
            and (not unbound_only or not job.external_job_id)
        ]
        if not candidates:
            return None
        latest = max(candidates, key=lambda job: job.created_at)
        return latest.with_changes()

    async def update_job(
        self,
        job_id: str,
        changes: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> Job | None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            for name, value in (expected or {}).items():
                if getattr(job, name) != value:
                    return None
            updated = job.with_changes(**{**changes, "updated_at": utc_now()})
            self._jobs[job_id] = updated
            return updated.with_changes()
