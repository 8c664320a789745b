"""Chunked transcript analysis.

Transcripts no longer than the chunk size go to the engine in a single
request. Longer transcripts are split into fixed-size chunks analyzed
concurrently (bounded by a semaphore, each under its own deadline) and
merged in chunk order. A failed chunk is dropped; the analysis fails only
when every chunk fails.
"""

from __future__ import annotations

import asyncio
import logging

from transcription_pipeline.analysis.chunking import (
    DEFAULT_CHUNK_SIZE,
    merge_chunk_results,
    split_into_chunks,
)
from transcription_pipeline.analysis.interface import AnalysisEngine, AnalysisResult
from transcription_pipeline.analysis.parsing import apply_defaults, parse_analysis_response
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    JobError,
    JobTimeoutError,
    UpstreamError,
    ValidationError,
)
from transcription_pipeline.utils.retry import RetryExecutor

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 300.0
DEFAULT_MAX_CONCURRENCY = 3


class ChunkedAnalyzer:
    """Analyze transcripts of any length with one engine.

    Args:
        engine: Analysis engine issuing the model requests.
        chunk_size: Maximum characters per request.
        request_timeout: Deadline in seconds for each request.
        max_concurrency: Maximum chunk requests in flight at once.
        retry: Retry policy for a single request. Defaults to retrying
            transient UpstreamErrors only.
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

    async def analyze(self, transcript: str, job_id: str | None = None) -> AnalysisResult:
        """Analyze a transcript.

        Args:
            transcript: Full transcript text.
            job_id: Job id used for log context and error messages.

        Returns:
            The (merged) AnalysisResult with defaults applied.

        Raises:
            ValidationError: If the transcript is empty.
            AuthenticationError: If the engine rejects our credentials.
            JobError: If a single-request analysis fails, or every chunk fails.
        """
        if not transcript or not transcript.strip():
            raise ValidationError("Transcript is empty", job_id=job_id, field="transcription_text")

        if len(transcript) <= self.chunk_size:
            result = await self._analyze_text(transcript, job_id)
            return apply_defaults(result)

        chunks = split_into_chunks(transcript, self.chunk_size)
        logger.info(
            "Analyzing transcript in %d chunks of up to %d chars",
            len(chunks),
            self.chunk_size,
            extra={"job_id": job_id, "stage": "analysis"},
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_chunk(index: int, chunk: str) -> tuple[int, AnalysisResult | None]:
            async with semaphore:
                try:
                    return index, await self._analyze_text(chunk, job_id)
                except AuthenticationError:
                    raise
                except JobError as exc:
                    logger.warning(
                        "Chunk %d/%d failed analysis, dropping it: %s",
                        index + 1,
                        len(chunks),
                        exc,
                        extra={"job_id": job_id, "stage": "analysis", "error": str(exc)},
                    )
                    return index, None

        outcomes = await asyncio.gather(
            *(run_chunk(index, chunk) for index, chunk in enumerate(chunks))
        )
        results = {index: result for index, result in outcomes if result is not None}
        if not results:
            raise UpstreamError(
                f"All {len(chunks)} analysis chunks failed",
                job_id=job_id,
                provider=self.engine.provider_name,
            )

        merged = merge_chunk_results(results)
        merged.chunk_count = len(chunks)
        merged.dropped_chunks = sorted(set(range(len(chunks))) - results.keys())
        return apply_defaults(merged)

    async def _analyze_text(self, text: str, job_id: str | None) -> AnalysisResult:
        raw = await self.retry.run(self._request_with_deadline, text, job_id)
        return parse_analysis_response(raw)

    async def _request_with_deadline(self, text: str, job_id: str | None) -> str:
        try:
            return await asyncio.wait_for(
                self.engine.request_analysis(text),
                timeout=self.request_timeout,
            )
        except TimeoutError as exc:
            raise JobTimeoutError(
                f"Analysis request timed out after {self.request_timeout}s",
                job_id=job_id,
                stage="analysis",
            ) from exc
