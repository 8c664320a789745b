"""Tests for TranscriptSummarizer."""

import asyncio

import pytest

from conftest import FakeEngine
from transcription_pipeline.analysis.summarizer import TranscriptSummarizer
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    JobTimeoutError,
    UpstreamError,
    ValidationError,
)
from transcription_pipeline.utils.retry import RetryExecutor

NO_WAIT = RetryExecutor(initial_delay=0.0, retryable_exceptions=(UpstreamError,))


def _part_summary(transcript: str, combine: bool) -> str:
    if combine:
        return " Overall: " + transcript.replace("\n\n", " | ") + " "
    return f"part {transcript[0]}"


class TestSingleRequest:
    """Transcripts within the chunk size are summarized in one request."""

    async def test_short_transcript_uses_one_call(self) -> None:
        engine = FakeEngine(summary="  The caller asked about pricing.\n")
        summarizer = TranscriptSummarizer(engine, chunk_size=12_000, retry=NO_WAIT)

        summary = await summarizer.summarize("a" * 12_000)

        assert summary == "The caller asked about pricing."
        assert engine.summary_calls == [("a" * 12_000, False)]

    async def test_empty_transcript_rejected(self) -> None:
        engine = FakeEngine()
        with pytest.raises(ValidationError):
            await TranscriptSummarizer(engine).summarize(" \n ")
        assert engine.summary_calls == []

    async def test_blank_model_output_raises(self) -> None:
        with pytest.raises(UpstreamError, match="empty summary"):
            await TranscriptSummarizer(FakeEngine(summary="   "), retry=NO_WAIT).summarize("hi")

    async def test_transient_errors_are_retried(self) -> None:
        engine = FakeEngine(
            summary="ok",
            summary_errors={0: UpstreamError("503", status_code=503, transient=True)},
        )
        summary = await TranscriptSummarizer(engine, retry=NO_WAIT).summarize("hello")
        assert summary == "ok"
        assert len(engine.summary_calls) == 2

    async def test_deadline_raises_timeout(self) -> None:
        class SlowEngine(FakeEngine):
            async def request_summary(self, transcript: str, combine: bool = False) -> str:
                await asyncio.sleep(1)
                return "late"

        summarizer = TranscriptSummarizer(SlowEngine(), request_timeout=0.01, retry=NO_WAIT)
        with pytest.raises(JobTimeoutError) as exc_info:
            await summarizer.summarize("hello", job_id="job-1")
        assert exc_info.value.stage == "summary"

    def test_rejects_non_positive_settings(self) -> None:
        with pytest.raises(ValueError):
            TranscriptSummarizer(FakeEngine(), chunk_size=0)
        with pytest.raises(ValueError):
            TranscriptSummarizer(FakeEngine(), max_concurrency=0)


class TestPartSummaries:
    """Longer transcripts are summarized in parts, then combined."""

    async def test_parts_then_combine_in_order(self) -> None:
        engine = FakeEngine(summary=_part_summary)
        summarizer = TranscriptSummarizer(engine, chunk_size=12_000, retry=NO_WAIT)
        transcript = "a" * 12_000 + "b" * 12_000 + "c" * 1_000

        summary = await summarizer.summarize(transcript)

        part_calls = [call for call in engine.summary_calls if not call[1]]
        assert sorted(text[0] for text, _ in part_calls) == ["a", "b", "c"]
        assert engine.summary_calls[-1] == ("part a\n\npart b\n\npart c", True)
        assert len(engine.summary_calls) == 4
        assert summary == "Overall: part a | part b | part c"

    async def test_failed_part_fails_summary(self) -> None:
        def respond(transcript: str, combine: bool) -> str:
            if transcript.startswith("b"):
                raise UpstreamError("HTTP 400 - rejected", status_code=400)
            return _part_summary(transcript, combine)

        engine = FakeEngine(summary=respond)
        summarizer = TranscriptSummarizer(engine, chunk_size=10, retry=NO_WAIT)

        with pytest.raises(UpstreamError, match="rejected"):
            await summarizer.summarize("a" * 10 + "b" * 10)
        assert not any(combine for _, combine in engine.summary_calls)

    async def test_auth_failure_propagates(self) -> None:
        engine = FakeEngine(summary_errors={0: AuthenticationError("bad key")})
        with pytest.raises(AuthenticationError):
            await TranscriptSummarizer(engine, chunk_size=5, retry=NO_WAIT).summarize("a" * 12)
