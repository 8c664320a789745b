"""Tests for JobSubmitter."""

import pytest

from conftest import FakeProvider
from transcription_pipeline.jobs.models import AnalysisStatus, JobStatus
from transcription_pipeline.jobs.submitter import JobSubmitter
from transcription_pipeline.storage.memory import InMemoryJobStore
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    PersistenceError,
    UpstreamError,
    ValidationError,
)
from transcription_pipeline.utils.retry import RetryExecutor

MEDIA_URL = "https://cdn.example.com/interview.mp3"
CALLBACK = "https://app.example.com/webhooks/rev-ai"


class TestJobSubmitter:
    """Tests for job creation and provider submission."""

    async def test_submit_creates_row_and_binds_external_id(self) -> None:
        store = InMemoryJobStore()
        provider = FakeProvider(external_job_id="rev-42")
        submitter = JobSubmitter(provider, store, callback_url=CALLBACK)

        job = await submitter.submit("user-1", MEDIA_URL, file_name="interview.mp3")

        assert job.status is JobStatus.PROCESSING
        assert job.analysis_status is AnalysisStatus.PENDING
        assert job.external_job_id == "rev-42"
        assert job.file_name == "interview.mp3"
        assert provider.submit_calls == [
            {"media_url": MEDIA_URL, "callback_url": CALLBACK, "metadata": None}
        ]
        stored = await store.get_job(job.id)
        assert stored.external_job_id == "rev-42"

    async def test_row_carries_required_media_columns(self) -> None:
        store = InMemoryJobStore()
        job = await JobSubmitter(FakeProvider(), store).submit(
            "user-1", MEDIA_URL, file_size=4096
        )

        row = (await store.get_job(job.id)).to_row()
        assert row["file_name"] == "interview.mp3"
        assert row["media_path"] == "interview.mp3"
        assert row["content_type"] == "audio/mpeg"
        assert row["file_size"] == 4096

    async def test_each_submit_creates_one_row(self) -> None:
        store = InMemoryJobStore()
        submitter = JobSubmitter(FakeProvider(), store)
        first = await submitter.submit("user-1", MEDIA_URL)
        second = await submitter.submit("user-1", MEDIA_URL)
        assert first.id != second.id
        assert len(store._jobs) == 2

    @pytest.mark.parametrize(
        ("owner", "url"),
        [("", MEDIA_URL), ("user-1", ""), ("user-1", "ftp://x/a.mp3"), ("user-1", "not a url")],
    )
    async def test_invalid_input_raises_before_any_write(self, owner, url) -> None:
        store = InMemoryJobStore()
        provider = FakeProvider()
        with pytest.raises(ValidationError):
            await JobSubmitter(provider, store).submit(owner, url)
        assert store._jobs == {}
        assert provider.submit_calls == []

    async def test_provider_rejection_marks_job_error(self) -> None:
        store = InMemoryJobStore()
        provider = FakeProvider(
            submit_error=UpstreamError("HTTP 400 - invalid media", status_code=400)
        )

        job = await JobSubmitter(provider, store).submit("user-1", MEDIA_URL)

        assert job.status is JobStatus.ERROR
        assert "invalid media" in job.error
        assert job.external_job_id is None

    async def test_provider_submission_is_not_retried(self) -> None:
        provider = FakeProvider(
            submit_error=UpstreamError("503", status_code=503, transient=True)
        )
        await JobSubmitter(provider, InMemoryJobStore()).submit("user-1", MEDIA_URL)
        assert len(provider.submit_calls) == 1

    async def test_auth_failure_marks_job_and_raises(self) -> None:
        store = InMemoryJobStore()
        provider = FakeProvider(submit_error=AuthenticationError("bad key"))

        with pytest.raises(AuthenticationError):
            await JobSubmitter(provider, store).submit("user-1", MEDIA_URL)

        (job,) = store._jobs.values()
        assert job.status is JobStatus.ERROR

    async def test_row_creation_is_retried(self) -> None:
        store = InMemoryJobStore()
        real_create = store.create_job
        attempts = []

        async def flaky_create(job):
            attempts.append(job.id)
            if len(attempts) == 1:
                raise PersistenceError("blip")
            return await real_create(job)

        store.create_job = flaky_create
        retry = RetryExecutor.persistence(initial_delay=0.0)

        job = await JobSubmitter(FakeProvider(), store, retry=retry).submit(
            "user-1", MEDIA_URL
        )

        assert len(attempts) == 2
        assert attempts[0] == attempts[1]
        assert job.external_job_id == "rev-1"

    async def test_existing_binding_from_webhook_is_kept(self) -> None:
        """A fallback webhook binding that lands first wins over the submit response."""
        store = InMemoryJobStore()
        provider = FakeProvider(external_job_id="rev-from-submit")
        real_submit = provider.submit_job

        async def submit_and_race(*args, **kwargs):
            (job,) = store._jobs.values()
            await store.update_job(job.id, {"external_job_id": "rev-from-webhook"})
            return await real_submit(*args, **kwargs)

        provider.submit_job = submit_and_race

        job = await JobSubmitter(provider, store).submit("user-1", MEDIA_URL)
        assert job.external_job_id == "rev-from-webhook"
