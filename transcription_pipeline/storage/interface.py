"""Abstract job store interface.

Concrete implementations (Supabase over PostgREST, in-memory) subclass
JobStore. All writes are keyed by job id and safe to re-invoke, so they
can run under RetryExecutor.
"""

from abc import ABC, abstractmethod
from typing import Any

from transcription_pipeline.jobs.models import Job


class JobStore(ABC):
    """Durable storage for Job rows."""

    @abstractmethod
    async def create_job(self, job: Job) -> Job:
        """Insert a job row, or overwrite the row with the same id.

        Returns:
            The stored job.

        Raises:
            PersistenceError: If the write fails.
        """

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None:
        """Fetch a job by local id, or None if absent."""

    @abstractmethod
    async def find_by_external_id(
        self, external_job_id: str, case_insensitive: bool = False
    ) -> list[Job]:
        """Return jobs bound to a provider job id, newest first."""

    @abstractmethod
    async def find_latest_unresolved(
        self, owner_id: str | None = None, unbound_only: bool = False
    ) -> Job | None:
        """Return the most recently created job whose status is not terminal.

        Args:
            owner_id: Restrict candidates to one owner when known.
            unbound_only: Only consider jobs with no external_job_id yet.
        """

    @abstractmethod
    async def update_job(
        self,
        job_id: str,
        changes: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> Job | None:
        """Apply ``changes`` to a job, conditioned on ``expected`` values.

        Both dicts are keyed by Job attribute names. The update only takes
        effect if every ``expected`` attribute currently holds the given
        value, which makes it a compare-and-set.

        Returns:
            The updated job, or None if no row matched (missing id or
            guard rejected).

        Raises:
            PersistenceError: If the write fails.
        """

    async def close(self) -> None:
        """Release any held resources."""
