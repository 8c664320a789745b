"""Abstract transcription provider interface.

Defines the TranscriptionProvider ABC and the transcript data models.
Concrete implementations (e.g., Rev.ai) subclass TranscriptionProvider.
Providers are asynchronous: a job is submitted, then its status is read
back later either by polling or from a webhook.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum


class ProviderJobState(StrEnum):
    """Provider job status collapsed into the three classes callers act on."""

    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SubmittedJob:
    """Provider response to a job submission."""

    external_job_id: str
    raw_status: str = ""


@dataclass
class JobStatusReport:
    """Provider view of a job's progress."""

    external_job_id: str
    state: ProviderJobState
    raw_status: str = ""
    failure_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state is not ProviderJobState.IN_PROGRESS


@dataclass
class TranscriptElement:
    """A single text element (word or punctuation) in a monologue."""

    value: str
    type: str = "text"


@dataclass
class TranscriptMonologue:
    """A run of elements attributed to one speaker."""

    speaker: int | None
    elements: list[TranscriptElement] = field(default_factory=list)


@dataclass
class Transcript:
    """Complete transcript with speaker monologues in document order."""

    monologues: list[TranscriptMonologue]
    raw_response: dict = field(default_factory=dict)


class TranscriptionProvider(ABC):
    """Abstract base class for speech-to-text providers."""

    name: str = "unknown"

    @abstractmethod
    async def submit_job(
        self,
        media_url: str,
        callback_url: str | None = None,
        metadata: str | None = None,
    ) -> SubmittedJob:
        """Submit media for asynchronous transcription.

        Args:
            media_url: URL the provider can fetch the audio from.
            callback_url: Webhook URL notified on completion, if any.
            metadata: Free-form metadata echoed back by the provider.

        Returns:
            SubmittedJob carrying the provider-assigned job id.
        """

    @abstractmethod
    async def get_job_status(self, external_job_id: str) -> JobStatusReport:
        """Read the current status of a provider job."""

    @abstractmethod
    async def fetch_transcript(self, external_job_id: str) -> Transcript:
        """Fetch the finished transcript of a provider job."""

    async def close(self) -> None:
        """Release any held resources."""
