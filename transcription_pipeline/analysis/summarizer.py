"""Plain-text transcript summaries.

A transcript within the chunk size is summarized in one request. Longer
transcripts are summarized part by part, then the part summaries are
combined in a final request. Unlike analysis, a failed part fails the whole
summary.
"""

from __future__ import annotations

import asyncio
import logging

from transcription_pipeline.analysis.analyzer import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_REQUEST_TIMEOUT,
)
from transcription_pipeline.analysis.chunking import DEFAULT_CHUNK_SIZE, split_into_chunks
from transcription_pipeline.analysis.interface import AnalysisEngine
from transcription_pipeline.utils.errors import (
    JobTimeoutError,
    UpstreamError,
    ValidationError,
)
from transcription_pipeline.utils.retry import RetryExecutor

logger = logging.getLogger(__name__)


class TranscriptSummarizer:
    """Summarize transcripts of any length with one engine.

    Args:
        engine: Engine issuing the model requests.
        chunk_size: Maximum transcript characters per request.
        request_timeout: Deadline in seconds for each request.
        max_concurrency: Maximum part requests in flight at once.
        retry: Retry policy for a single request.
    """

    def __init__(
        self,
        engine: AnalysisEngine,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        retry: RetryExecutor | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.engine = engine
        self.chunk_size = chunk_size
        self.request_timeout = request_timeout
        self.max_concurrency = max_concurrency
        self.retry = retry or RetryExecutor(retryable_exceptions=(UpstreamError,))

    async def summarize(self, transcript: str, job_id: str | None = None) -> str:
        """Summarize a transcript.

        Raises:
            ValidationError: If the transcript is empty.
            AuthenticationError: If the engine rejects our credentials.
            UpstreamError: If a request fails or the model returns no text.
            JobTimeoutError: If a request exceeds its deadline.
        """
        if not transcript or not transcript.strip():
            raise ValidationError("Transcript is empty", job_id=job_id, field="transcription_text")

        if len(transcript) <= self.chunk_size:
            return await self._summarize_text(transcript, job_id)

        parts = split_into_chunks(transcript, self.chunk_size)
        logger.info(
            "Summarizing transcript in %d parts of up to %d chars",
            len(parts),
            self.chunk_size,
            extra={"job_id": job_id, "stage": "summary"},
        )
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_part(part: str) -> str:
            async with semaphore:
                return await self._summarize_text(part, job_id)

        # gather keeps part order
        part_summaries = await asyncio.gather(*(run_part(part) for part in parts))
        return await self._summarize_text("\n\n".join(part_summaries), job_id, combine=True)

    async def _summarize_text(
        self, text: str, job_id: str | None, combine: bool = False
    ) -> str:
        summary = await self.retry.run(self._request_with_deadline, text, job_id, combine)
        if not summary:
            raise UpstreamError(
                "Model returned an empty summary",
                job_id=job_id,
                provider=self.engine.provider_name,
            )
        return summary

    async def _request_with_deadline(self, text: str, job_id: str | None, combine: bool) -> str:
        try:
            summary = await asyncio.wait_for(
                self.engine.request_summary(text, combine=combine),
                timeout=self.request_timeout,
            )
        except TimeoutError as exc:
            raise JobTimeoutError(
                f"Summary request timed out after {self.request_timeout}s",
                job_id=job_id,
                stage="summary",
            ) from exc
        return summary.strip()
