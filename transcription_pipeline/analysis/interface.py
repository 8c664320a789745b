"""Abstract transcript analysis interface.

Defines the AnalysisEngine ABC and the AnalysisResult data model.
Concrete implementations (e.g., OpenAIAnalysisEngine) subclass
AnalysisEngine and return the model's raw text; parsing and repair happen
in analysis.parsing so every engine gets the same policy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

LIST_FIELDS: tuple[str, ...] = (
    "topics",
    "key_insights",
    "action_items",
    "questions",
    "pain_points",
    "feature_requests",
)
NARRATIVE_FIELDS: tuple[str, ...] = ("tone_analysis", "sentiment_explanation")

SENTIMENTS: tuple[str, ...] = ("positive", "negative", "neutral")
DEFAULT_SENTIMENT = "neutral"


@dataclass
class AnalysisResult:
    """Structured analysis of a transcript (or of one chunk of it).

    ``sentiment_detected`` records whether the model supplied a sentiment
    label at all; only detected sentiments take part in a chunk vote.
    ``raw_text`` is set when the response could not be parsed and the
    degraded placeholder was recorded instead.
    """

    topics: list[Any] = field(default_factory=list)
    key_insights: list[Any] = field(default_factory=list)
    action_items: list[Any] = field(default_factory=list)
    questions: list[Any] = field(default_factory=list)
    pain_points: list[Any] = field(default_factory=list)
    feature_requests: list[Any] = field(default_factory=list)
    sentiment: str = DEFAULT_SENTIMENT
    sentiment_explanation: str = ""
    tone_analysis: str = ""
    sentiment_detected: bool = False
    raw_text: str | None = None
    chunk_count: int = 1
    dropped_chunks: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the analysis_data column format."""
        data: dict[str, Any] = {name: list(getattr(self, name)) for name in LIST_FIELDS}
        data["sentiment"] = self.sentiment
        data["sentiment_explanation"] = self.sentiment_explanation
        data["tone_analysis"] = self.tone_analysis
        if self.raw_text is not None:
            data["raw_text"] = self.raw_text
        if self.chunk_count > 1:
            data["chunk_count"] = self.chunk_count
            data["dropped_chunks"] = list(self.dropped_chunks)
        return data


class AnalysisEngine(ABC):
    """Abstract base class for LLM analysis engines.

    Subclasses must implement the provider_name property and the
    request_analysis() and request_summary() methods.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier (e.g., 'openai')."""

    @abstractmethod
    async def request_analysis(self, transcript: str) -> str:
        """Send one analysis request and return the model's raw text.

        Args:
            transcript: Transcript text (whole, or a single chunk).

        Returns:
            Free text expected to contain a JSON object.

        Raises:
            UpstreamError: If the provider call fails.
            AuthenticationError: If the provider rejects our credentials.
        """

    @abstractmethod
    async def request_summary(self, transcript: str, combine: bool = False) -> str:
        """Send one summary request and return the model's plain-text summary.

        Args:
            transcript: Transcript text, or the joined part summaries when
                ``combine`` is set.
            combine: Whether ``transcript`` holds part summaries to merge.

        Raises:
            UpstreamError: If the provider call fails.
            AuthenticationError: If the provider rejects our credentials.
        """
