"""Tests for JobPipeline orchestration."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeEngine, FakeProvider, completed_job, make_transcript, processing_job
from transcription_pipeline.analysis.analyzer import ChunkedAnalyzer
from transcription_pipeline.analysis.summarizer import TranscriptSummarizer
from transcription_pipeline.jobs.models import AnalysisStatus, JobStatus
from transcription_pipeline.jobs.poller import StatusPoller
from transcription_pipeline.jobs.submitter import JobSubmitter
from transcription_pipeline.pipeline import JobPipeline, is_placeholder_transcript
from transcription_pipeline.storage.memory import InMemoryJobStore
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from transcription_pipeline.utils.retry import RetryExecutor

TRANSCRIPT = (
    "Thanks for joining. We mainly want to understand how your team handles "
    "onboarding today and where the pricing page confused you."
)
ANALYSIS = json.dumps(
    {
        "topics": ["onboarding", "pricing"],
        "keyInsights": ["Pricing page is confusing"],
        "sentiment": "Negative",
        "sentiment_explanation": "Frustration with pricing",
    }
)
NO_WAIT = RetryExecutor(initial_delay=0.0, retryable_exceptions=(UpstreamError,))


def _pipeline(store, engine, **kwargs):
    return JobPipeline(store, ChunkedAnalyzer(engine, retry=NO_WAIT), **kwargs)


class TestIsPlaceholderTranscript:
    """Tests for detection of status text stored in place of a transcript."""

    @pytest.mark.parametrize(
        "text",
        [
            None,
            "",
            "too short",
            "Processing your audio file. Please wait while we transcribe everything here.",
            "Your recording is being processed and the transcript will appear shortly, thanks.",
            "TRANSCRIPTION IN PROGRESS - this may take a while depending on the file length.",
        ],
    )
    def test_placeholders(self, text) -> None:
        assert is_placeholder_transcript(text)

    def test_real_transcript(self) -> None:
        assert not is_placeholder_transcript(TRANSCRIPT)


class TestAnalyzeJob:
    """Tests for analyze_job()."""

    async def test_stores_analysis_for_completed_job(self, capsys) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])
        engine = FakeEngine(ANALYSIS)

        job = await _pipeline(store, engine).analyze_job("job-1")

        assert job.analysis_status is AnalysisStatus.COMPLETED
        assert job.analysis_data["topics"] == ["onboarding", "pricing"]
        assert job.analysis_data["key_insights"] == ["Pricing page is confusing"]
        assert job.analysis_data["sentiment"] == "negative"
        assert engine.calls == [TRANSCRIPT]

        metric_lines = [
            json.loads(line)
            for line in capsys.readouterr().out.splitlines()
            if '"metric_type"' in line
        ]
        assert metric_lines[-1]["metric_type"] == "job_analysis"
        assert metric_lines[-1]["analysis_status"] == "completed"
        assert metric_lines[-1]["transcript_chars"] == len(TRANSCRIPT)

    async def test_missing_job_raises_not_found(self) -> None:
        with pytest.raises(NotFoundError):
            await _pipeline(InMemoryJobStore(), FakeEngine()).analyze_job("nope")

    async def test_requires_completed_transcription(self) -> None:
        store = InMemoryJobStore([processing_job()])
        with pytest.raises(ValidationError):
            await _pipeline(store, FakeEngine()).analyze_job("job-1")

    @pytest.mark.parametrize(
        "status", [AnalysisStatus.COMPLETED, AnalysisStatus.ERROR, AnalysisStatus.PROCESSING]
    )
    async def test_claimed_or_finished_analysis_is_left_alone(self, status) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT, analysis_status=status)])
        engine = FakeEngine(ANALYSIS)

        job = await _pipeline(store, engine).analyze_job("job-1")

        assert job.analysis_status is status
        assert engine.calls == []

    async def test_placeholder_transcript_skips_engine(self) -> None:
        store = InMemoryJobStore(
            [completed_job(text="Processing your audio file. Please wait...")]
        )
        engine = FakeEngine(ANALYSIS)

        job = await _pipeline(store, engine).analyze_job("job-1")

        assert engine.calls == []
        assert job.analysis_status is AnalysisStatus.COMPLETED
        assert job.analysis_data["topics"] == ["Processing"]
        assert job.analysis_data["sentiment"] == "neutral"

    async def test_engine_failure_marks_analysis_error(self) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])
        engine = FakeEngine(errors={0: UpstreamError("HTTP 400 - bad", status_code=400)})

        job = await _pipeline(store, engine).analyze_job("job-1")

        assert job.status is JobStatus.COMPLETED
        assert job.analysis_status is AnalysisStatus.ERROR
        assert job.error == "HTTP 400 - bad"

    async def test_auth_failure_marks_error_and_raises(self) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])
        engine = FakeEngine(errors={0: AuthenticationError("bad key")})

        with pytest.raises(AuthenticationError):
            await _pipeline(store, engine).analyze_job("job-1")
        assert (await store.get_job("job-1")).analysis_status is AnalysisStatus.ERROR

    async def test_second_run_does_not_reanalyze(self) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])
        engine = FakeEngine(ANALYSIS)
        pipeline = _pipeline(store, engine)

        await pipeline.analyze_job("job-1")
        await pipeline.analyze_job("job-1")

        assert len(engine.calls) == 1


class TestSummarizeJob:
    """Tests for summarize_job()."""

    def _summarizing(self, store, engine):
        summarizer = TranscriptSummarizer(engine, retry=NO_WAIT)
        return _pipeline(store, engine, summarizer=summarizer)

    async def test_stores_summary_for_completed_job(self, capsys) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])
        engine = FakeEngine(summary="Onboarding and pricing confusion.")

        job = await self._summarizing(store, engine).summarize_job("job-1")

        assert job.summary_status is AnalysisStatus.COMPLETED
        assert job.summary_text == "Onboarding and pricing confusion."
        assert job.analysis_status is AnalysisStatus.PENDING
        assert engine.summary_calls == [(TRANSCRIPT, False)]
        metric_lines = [
            json.loads(line)
            for line in capsys.readouterr().out.splitlines()
            if '"metric_type"' in line
        ]
        assert metric_lines[-1]["metric_type"] == "job_summary"
        assert metric_lines[-1]["summary_status"] == "completed"

    async def test_requires_summarizer(self) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])
        with pytest.raises(ConfigurationError):
            await _pipeline(store, FakeEngine()).summarize_job("job-1")

    async def test_missing_job_raises_not_found(self) -> None:
        with pytest.raises(NotFoundError):
            await self._summarizing(InMemoryJobStore(), FakeEngine()).summarize_job("nope")

    async def test_requires_completed_transcription(self) -> None:
        store = InMemoryJobStore([processing_job()])
        with pytest.raises(ValidationError):
            await self._summarizing(store, FakeEngine()).summarize_job("job-1")
        assert (await store.get_job("job-1")).summary_status is AnalysisStatus.PENDING

    async def test_empty_transcript_is_rejected_without_claiming(self) -> None:
        store = InMemoryJobStore([completed_job(text="   ")])
        engine = FakeEngine()

        with pytest.raises(ValidationError):
            await self._summarizing(store, engine).summarize_job("job-1")

        assert engine.summary_calls == []
        assert (await store.get_job("job-1")).summary_status is AnalysisStatus.PENDING

    @pytest.mark.parametrize(
        "status", [AnalysisStatus.COMPLETED, AnalysisStatus.ERROR, AnalysisStatus.PROCESSING]
    )
    async def test_claimed_or_finished_summary_is_left_alone(self, status) -> None:
        store = InMemoryJobStore(
            [completed_job(text=TRANSCRIPT, summary_status=status, summary_text="old")]
        )
        engine = FakeEngine()

        job = await self._summarizing(store, engine).summarize_job("job-1")

        assert job.summary_status is status
        assert job.summary_text == "old"
        assert engine.summary_calls == []

    async def test_engine_failure_marks_summary_error(self) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])
        engine = FakeEngine(summary_errors={0: UpstreamError("HTTP 400 - bad", status_code=400)})

        job = await self._summarizing(store, engine).summarize_job("job-1")

        assert job.summary_status is AnalysisStatus.ERROR
        assert job.summary_text is None
        assert job.error == "HTTP 400 - bad"
        assert job.status is JobStatus.COMPLETED

    async def test_empty_model_output_marks_summary_error(self) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])

        job = await self._summarizing(store, FakeEngine(summary="  ")).summarize_job("job-1")

        assert job.summary_status is AnalysisStatus.ERROR
        assert "empty summary" in job.error

    async def test_auth_failure_marks_error_and_raises(self) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])
        engine = FakeEngine(summary_errors={0: AuthenticationError("bad key")})

        with pytest.raises(AuthenticationError):
            await self._summarizing(store, engine).summarize_job("job-1")
        assert (await store.get_job("job-1")).summary_status is AnalysisStatus.ERROR

    async def test_summary_and_analysis_are_independent(self) -> None:
        store = InMemoryJobStore([completed_job(text=TRANSCRIPT)])
        engine = FakeEngine(ANALYSIS, summary="Summary.")
        pipeline = self._summarizing(store, engine)

        await pipeline.analyze_job("job-1")
        job = await pipeline.summarize_job("job-1")

        assert job.analysis_status is AnalysisStatus.COMPLETED
        assert job.analysis_data["topics"] == ["onboarding", "pricing"]
        assert job.summary_status is AnalysisStatus.COMPLETED
        assert job.summary_text == "Summary."


class TestProcess:
    """Tests for the submit -> poll -> analyze path."""

    def _build(self, provider, engine, store):
        return _pipeline(
            store,
            engine,
            submitter=JobSubmitter(provider, store),
            poller=StatusPoller(provider, store, max_attempts=3, delay_seconds=0.0),
        )

    async def test_end_to_end(self) -> None:
        store = InMemoryJobStore()
        provider = FakeProvider(
            statuses=["in_progress", "transcribed"],
            transcript=make_transcript(*TRANSCRIPT.split()),
        )
        engine = FakeEngine(ANALYSIS)

        job = await self._build(provider, engine, store).process(
            "user-1", "https://cdn.example.com/call.mp3"
        )

        assert job.status is JobStatus.COMPLETED
        assert job.transcription_text == TRANSCRIPT
        assert job.analysis_status is AnalysisStatus.COMPLETED
        assert job.analysis_data["topics"] == ["onboarding", "pricing"]

    async def test_provider_failure_skips_analysis(self) -> None:
        store = InMemoryJobStore()
        provider = FakeProvider(statuses=["failed"], failure_reason="bad audio")
        engine = FakeEngine(ANALYSIS)

        job = await self._build(provider, engine, store).process(
            "user-1", "https://cdn.example.com/call.mp3"
        )

        assert job.status is JobStatus.ERROR
        assert job.analysis_status is AnalysisStatus.PENDING
        assert engine.calls == []

    async def test_polling_timeout_returns_errored_job(self) -> None:
        store = InMemoryJobStore()
        provider = FakeProvider(statuses=["in_progress"])

        with patch("asyncio.sleep", new_callable=AsyncMock):
            job = await self._build(provider, FakeEngine(), store).process(
                "user-1", "https://cdn.example.com/call.mp3"
            )

        assert job.status is JobStatus.ERROR
        assert "timed out" in job.error

    async def test_requires_submitter_and_poller(self) -> None:
        with pytest.raises(ConfigurationError):
            await _pipeline(InMemoryJobStore(), FakeEngine()).process(
                "user-1", "https://cdn.example.com/call.mp3"
            )
