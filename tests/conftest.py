"""Shared fakes for provider and engine collaborators, plus job builders."""

from __future__ import annotations

from collections.abc import Iterable

from transcription_pipeline.analysis.interface import AnalysisEngine
from transcription_pipeline.asr.interface import (
    JobStatusReport,
    ProviderJobState,
    SubmittedJob,
    Transcript,
    TranscriptElement,
    TranscriptionProvider,
    TranscriptMonologue,
)
from transcription_pipeline.jobs.models import AnalysisStatus, Job, JobStatus


def make_transcript(*words: str) -> Transcript:
    return Transcript(
        monologues=[
            TranscriptMonologue(
                speaker=0,
                elements=[TranscriptElement(value=w) for w in words],
            )
        ]
    )


class FakeProvider(TranscriptionProvider):
    """Scripted provider: status reports are returned in order, last one repeats."""

    name = "fake"

    def __init__(
        self,
        statuses: Iterable[str] = ("in_progress",),
        transcript: Transcript | None = None,
        external_job_id: str = "rev-1",
        submit_error: Exception | None = None,
        status_error: Exception | None = None,
        transcript_error: Exception | None = None,
        failure_reason: str | None = None,
    ) -> None:
        self.statuses = list(statuses)
        self.transcript = transcript or make_transcript("Hello", "world")
        self.external_job_id = external_job_id
        self.submit_error = submit_error
        self.status_error = status_error
        self.transcript_error = transcript_error
        self.failure_reason = failure_reason
        self.submit_calls: list[dict] = []
        self.status_calls = 0
        self.transcript_calls = 0

    async def submit_job(self, media_url, callback_url=None, metadata=None):
        self.submit_calls.append(
            {"media_url": media_url, "callback_url": callback_url, "metadata": metadata}
        )
        if self.submit_error:
            raise self.submit_error
        return SubmittedJob(external_job_id=self.external_job_id, raw_status="in_progress")

    async def get_job_status(self, external_job_id):
        self.status_calls += 1
        if self.status_error:
            raise self.status_error
        index = min(self.status_calls - 1, len(self.statuses) - 1)
        raw = self.statuses[index]
        state = {
            "in_progress": ProviderJobState.IN_PROGRESS,
            "transcribed": ProviderJobState.SUCCEEDED,
            "failed": ProviderJobState.FAILED,
        }[raw]
        return JobStatusReport(
            external_job_id=external_job_id,
            state=state,
            raw_status=raw,
            failure_reason=self.failure_reason if raw == "failed" else None,
        )

    async def fetch_transcript(self, external_job_id):
        self.transcript_calls += 1
        if self.transcript_error:
            raise self.transcript_error
        return self.transcript


class FakeEngine(AnalysisEngine):
    """Returns canned responses; a callable response receives the prompt text.

    ``errors`` and ``summary_errors`` map a zero-based call index to the
    exception that call raises.
    """

    def __init__(
        self,
        response="{}",
        errors: dict[int, Exception] | None = None,
        summary="A short summary.",
        summary_errors: dict[int, Exception] | None = None,
    ) -> None:
        self.response = response
        self.errors = errors or {}
        self.calls: list[str] = []
        self.summary = summary
        self.summary_errors = summary_errors or {}
        self.summary_calls: list[tuple[str, bool]] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    async def request_analysis(self, transcript: str) -> str:
        self.calls.append(transcript)
        error = self.errors.get(len(self.calls) - 1)
        if error is not None:
            raise error
        if callable(self.response):
            return self.response(transcript)
        return self.response

    async def request_summary(self, transcript: str, combine: bool = False) -> str:
        self.summary_calls.append((transcript, combine))
        error = self.summary_errors.get(len(self.summary_calls) - 1)
        if error is not None:
            raise error
        if callable(self.summary):
            return self.summary(transcript, combine)
        return self.summary


def processing_job(job_id="job-1", owner_id="user-1", external_job_id="rev-1", **kwargs) -> Job:
    return Job(id=job_id, owner_id=owner_id, external_job_id=external_job_id, **kwargs)


def completed_job(job_id="job-1", text="", **kwargs) -> Job:
    return Job(
        id=job_id,
        owner_id=kwargs.pop("owner_id", "user-1"),
        status=JobStatus.COMPLETED,
        analysis_status=kwargs.pop("analysis_status", AnalysisStatus.PENDING),
        external_job_id=kwargs.pop("external_job_id", "rev-1"),
        transcription_text=text,
        **kwargs,
    )
