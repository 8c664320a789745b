"""Rev.ai ASR client implementation.

Implements RevAiProvider using the Rev.ai asynchronous Speech-to-Text
API v1: submit by media URL (optionally with a callback URL), read job
status, and fetch the JSON transcript.
"""

from __future__ import annotations

import logging
import os

import httpx

from transcription_pipeline.asr.interface import (
    JobStatusReport,
    ProviderJobState,
    SubmittedJob,
    Transcript,
    TranscriptElement,
    TranscriptionProvider,
    TranscriptMonologue,
)
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    ConfigurationError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.rev.ai/speechtotext/v1"
TRANSCRIPT_MEDIA_TYPE = "application/vnd.rev.transcript.v1.0+json"
DEFAULT_METADATA = "Transcription job"

AUTH_STATUS_CODES = {401, 403}
TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}

_STATE_MAP: dict[str, ProviderJobState] = {
    "in_progress": ProviderJobState.IN_PROGRESS,
    "transcribed": ProviderJobState.SUCCEEDED,
    "failed": ProviderJobState.FAILED,
}


def classify_status(raw_status: str | None) -> ProviderJobState:
    """Map a Rev.ai job status string to a ProviderJobState.

    Unknown or missing values are treated as still in progress.
    """
    return _STATE_MAP.get((raw_status or "").lower(), ProviderJobState.IN_PROGRESS)


class RevAiProvider(TranscriptionProvider):
    """Rev.ai asynchronous API client.

    Args:
        api_key: Rev.ai access token. Falls back to REV_AI_API_KEY.
        base_url: Rev.ai API base URL (default production endpoint).
        timeout: Per-request timeout in seconds.
        client: Optional pre-configured httpx.AsyncClient.
    """

    name = "rev_ai"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key or os.environ.get("REV_AI_API_KEY", "")
        if not self._api_key:
            raise ConfigurationError("REV_AI_API_KEY is required", setting="REV_AI_API_KEY")
        self._base_url = (
            base_url or os.environ.get("REV_AI_BASE_URL", "") or DEFAULT_BASE_URL
        ).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self, accept: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if accept:
            headers["Accept"] = accept
        return headers

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        action: str,
        **kwargs: object,
    ) -> httpx.Response:
        """Send a request and translate failures into the error taxonomy.

        Raises:
            AuthenticationError: On HTTP 401/403.
            UpstreamError: On transport errors or any other non-2xx status.
        """
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"Failed to {action}: {exc}",
                provider=self.name,
                transient=True,
            ) from exc

        if response.status_code in AUTH_STATUS_CODES:
            raise AuthenticationError(
                f"Rev.ai rejected credentials while trying to {action}: "
                f"HTTP {response.status_code}",
                provider=self.name,
            )
        if response.status_code >= 400:
            raise UpstreamError(
                f"Failed to {action}: HTTP {response.status_code} - {response.text}",
                provider=self.name,
                status_code=response.status_code,
                transient=response.status_code in TRANSIENT_STATUS_CODES,
            )
        return response

    def _json(self, response: httpx.Response, action: str) -> dict:
        """Decode a JSON object body.

        Raises:
            UpstreamError: If the body is not valid JSON or not an object.
        """
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Invalid JSON response from Rev.ai while trying to {action}: "
                f"{response.text[:200]}",
                provider=self.name,
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise UpstreamError(
                f"Unexpected response from Rev.ai while trying to {action}: "
                f"expected a JSON object, got {type(payload).__name__}",
                provider=self.name,
                status_code=response.status_code,
            )
        return payload

    async def submit_job(
        self,
        media_url: str,
        callback_url: str | None = None,
        metadata: str | None = None,
    ) -> SubmittedJob:
        """Submit a media URL for transcription.

        Returns:
            SubmittedJob with the Rev.ai job id.

        Raises:
            UpstreamError: If the submission is rejected or unreachable.
        """
        body: dict[str, object] = {
            "source_config": {"url": media_url},
            "metadata": metadata or DEFAULT_METADATA,
        }
        if callback_url:
            body["callback_url"] = callback_url

        response = await self._send(
            "POST", "/jobs", "submit job", headers=self._headers(), json=body
        )
        payload = self._json(response, "submit job")

        job_id = payload.get("id")
        if not job_id:
            raise UpstreamError("No job ID in submission response", provider=self.name)

        logger.info("Submitted Rev.ai job %s", job_id, extra={"external_job_id": job_id})
        return SubmittedJob(external_job_id=job_id, raw_status=payload.get("status", ""))

    async def get_job_status(self, external_job_id: str) -> JobStatusReport:
        response = await self._send(
            "GET",
            f"/jobs/{external_job_id}",
            "poll job status",
            headers=self._headers(),
        )
        payload = self._json(response, "poll job status")
        raw_status = payload.get("status", "")
        state = classify_status(raw_status)
        failure_reason = None
        if state is ProviderJobState.FAILED:
            failure_reason = (
                payload.get("failure_detail") or payload.get("failure") or None
            )
        return JobStatusReport(
            external_job_id=external_job_id,
            state=state,
            raw_status=raw_status,
            failure_reason=failure_reason,
        )

    async def fetch_transcript(self, external_job_id: str) -> Transcript:
        response = await self._send(
            "GET",
            f"/jobs/{external_job_id}/transcript",
            "fetch transcript",
            headers=self._headers(accept=TRANSCRIPT_MEDIA_TYPE),
        )
        return self._convert_response(self._json(response, "fetch transcript"))

    def _convert_response(self, raw_response: dict) -> Transcript:
        """Convert a Rev.ai JSON transcript to the internal Transcript model.

        Malformed monologues or elements are skipped rather than failing.
        """
        monologues: list[TranscriptMonologue] = []
        raw_monologues = raw_response.get("monologues")
        if not isinstance(raw_monologues, list):
            return Transcript(monologues=[], raw_response=raw_response)

        for raw_monologue in raw_monologues:
            if not isinstance(raw_monologue, dict):
                continue
            elements: list[TranscriptElement] = []
            raw_elements = raw_monologue.get("elements")
            if isinstance(raw_elements, list):
                for raw_element in raw_elements:
                    if not isinstance(raw_element, dict):
                        continue
                    elements.append(
                        TranscriptElement(
                            value=raw_element.get("value") or "",
                            type=raw_element.get("type", "text"),
                        )
                    )
            monologues.append(
                TranscriptMonologue(
                    speaker=raw_monologue.get("speaker"),
                    elements=elements,
                )
            )

        return Transcript(monologues=monologues, raw_response=raw_response)
