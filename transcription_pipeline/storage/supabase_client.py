"""Supabase job store.

Talks to the ``transcriptions`` table through Supabase's PostgREST
endpoint. Conditional updates are expressed as extra ``eq`` filters on the
PATCH, so PostgreSQL evaluates the guard and the write atomically; an empty
representation in the response means the guard rejected the update.

Stage columns (``analysis_status``, ``summary_status``) may be NULL on rows
written before the stage existed; a guard on ``pending`` matches NULL too.
"""

from __future__ import annotations

import logging
import os
from enum import StrEnum
from typing import Any

import httpx

from transcription_pipeline.jobs.models import (
    AnalysisStatus,
    Job,
    JobStatus,
    column_name,
    utc_now,
)
from transcription_pipeline.storage.interface import JobStore
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    ConfigurationError,
    PersistenceError,
)

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "transcriptions"


def _filter_value(value: Any) -> str:
    """Render a PostgREST equality filter (StrEnum formats as its value)."""
    if value is None:
        return "is.null"
    return f"eq.{value}"


def _serialize(changes: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for name, value in changes.items():
        if isinstance(value, StrEnum):
            value = value.value
        payload[column_name(name)] = value
    return payload


class SupabaseJobStore(JobStore):
    """JobStore backed by Supabase PostgREST.

    Reads configuration from environment variables:
        SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_TABLE

    Args:
        url: Supabase project URL.
        service_role_key: Service role key (bypasses row level security).
        table: Table holding job rows.
        client: Optional pre-configured httpx.AsyncClient.
    """

    def __init__(
        self,
        url: str | None = None,
        service_role_key: str | None = None,
        table: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = (url or os.environ.get("SUPABASE_URL", "")).rstrip("/")
        self.service_role_key = service_role_key or os.environ.get(
            "SUPABASE_SERVICE_ROLE_KEY", ""
        )
        self.table = table or os.environ.get("SUPABASE_TABLE", DEFAULT_TABLE)

        if not self.url:
            raise ConfigurationError("SUPABASE_URL is required", setting="SUPABASE_URL")
        if not self.service_role_key:
            raise ConfigurationError(
                "SUPABASE_SERVICE_ROLE_KEY is required",
                setting="SUPABASE_SERVICE_ROLE_KEY",
            )

        self._client = client or httpx.AsyncClient(timeout=30.0)

    @property
    def endpoint(self) -> str:
        return f"{self.url}/rest/v1/{self.table}"

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        """Build authentication headers for PostgREST."""
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def close(self) -> None:
        """Close the shared HTTP client and release connection pool."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        operation: str,
        job_id: str | None = None,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        try:
            response = await self._client.request(
                method,
                self.endpoint,
                params=params,
                json=json,
                headers=self._headers(prefer),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            if status_code in (401, 403):
                raise AuthenticationError(
                    f"Supabase rejected credentials during {operation}: "
                    f"HTTP {status_code}",
                    job_id=job_id,
                    provider="supabase",
                ) from exc
            raise PersistenceError(
                f"Supabase {operation} failed: HTTP {status_code}",
                job_id=job_id,
                operation=operation,
            ) from exc
        except httpx.RequestError as exc:
            raise PersistenceError(
                f"Supabase {operation} failed: {exc}",
                job_id=job_id,
                operation=operation,
            ) from exc

        if not response.content:
            return []
        body = response.json()
        if isinstance(body, dict):
            return [body]
        return body

    async def create_job(self, job: Job) -> Job:
        rows = await self._request(
            "POST",
            "create_job",
            job_id=job.id,
            params={"on_conflict": "id"},
            json=job.to_row(),
            prefer="resolution=merge-duplicates,return=representation",
        )
        if not rows:
            raise PersistenceError(
                "Supabase create_job returned no row",
                job_id=job.id,
                operation="create_job",
            )
        logger.info("Created job row", extra={"job_id": job.id})
        return Job.from_row(rows[0])

    async def get_job(self, job_id: str) -> Job | None:
        rows = await self._request(
            "GET",
            "get_job",
            job_id=job_id,
            params={"id": f"eq.{job_id}", "select": "*", "limit": "1"},
        )
        return Job.from_row(rows[0]) if rows else None

    async def find_by_external_id(
        self, external_job_id: str, case_insensitive: bool = False
    ) -> list[Job]:
        operator = "ilike" if case_insensitive else "eq"
        rows = await self._request(
            "GET",
            "find_by_external_id",
            params={
                "rev_ai_job_id": f"{operator}.{external_job_id}",
                "select": "*",
                "order": "created_at.desc",
            },
        )
        jobs = [Job.from_row(row) for row in rows]
        if case_insensitive:
            # ilike treats '_' and '%' as wildcards; keep exact case-folded matches only
            needle = external_job_id.lower()
            jobs = [
                job
                for job in jobs
                if job.external_job_id and job.external_job_id.lower() == needle
            ]
        return jobs

    async def find_latest_unresolved(
        self, owner_id: str | None = None, unbound_only: bool = False
    ) -> Job | None:
        params = {
            "status": f"eq.{JobStatus.PROCESSING.value}",
            "select": "*",
            "order": "created_at.desc",
            "limit": "1",
        }
        if owner_id is not None:
            params["user_id"] = f"eq.{owner_id}"
        if unbound_only:
            params["rev_ai_job_id"] = "is.null"
        rows = await self._request("GET", "find_latest_unresolved", params=params)
        return Job.from_row(rows[0]) if rows else None

    async def update_job(
        self,
        job_id: str,
        changes: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> Job | None:
        params = {"id": f"eq.{job_id}"}
        pending_or_null: list[str] = []
        for name, value in (expected or {}).items():
            column = column_name(name)
            if value == AnalysisStatus.PENDING:
                pending_or_null.append(f"or({column}.is.null,{column}.eq.{value})")
            else:
                params[column] = _filter_value(value)
        if pending_or_null:
            params["and"] = f"({','.join(pending_or_null)})"

        payload = _serialize({**changes, "updated_at": utc_now()})
        rows = await self._request(
            "PATCH",
            "update_job",
            job_id=job_id,
            params=params,
            json=payload,
            prefer="return=representation",
        )
        return Job.from_row(rows[0]) if rows else None
