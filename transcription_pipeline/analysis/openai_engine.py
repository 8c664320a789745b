"""OpenAI chat-completions analysis engine.

Sends one transcript (or chunk) per request with the analysis or summary
system prompt.
A rate-limited request is retried once on the fallback model before the
error is surfaced.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import openai

from transcription_pipeline.analysis.interface import AnalysisEngine
from transcription_pipeline.analysis.prompts import (
    ANALYSIS_SYSTEM,
    ANALYSIS_USER_TEMPLATE,
    SUMMARY_COMBINE_TEMPLATE,
    SUMMARY_SYSTEM,
    SUMMARY_USER_TEMPLATE,
)
from transcription_pipeline.utils.errors import (
    AuthenticationError,
    ConfigurationError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4"
DEFAULT_FALLBACK_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 1000
DEFAULT_SUMMARY_MAX_TOKENS = 500


class OpenAIAnalysisEngine(AnalysisEngine):
    """Transcript analysis via the OpenAI chat completions API.

    Args:
        api_key: OpenAI API key. Falls back to OPENAI_API_KEY.
        model: Primary model name.
        fallback_model: Model used once when the primary is rate limited.
            Pass an empty string to disable the fallback.
        client: Optional pre-configured openai.AsyncOpenAI client.
        summary_max_tokens: Completion budget for summary requests.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        fallback_model: str | None = DEFAULT_FALLBACK_MODEL,
        client: Any = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        summary_max_tokens: int = DEFAULT_SUMMARY_MAX_TOKENS,
    ) -> None:
        if client is not None:
            self._client = client
        else:
            key = api_key or os.environ.get("OPENAI_API_KEY", "")
            if not key:
                raise ConfigurationError("OPENAI_API_KEY is required", setting="OPENAI_API_KEY")
            # Retries are owned by the analyzer's RetryExecutor
            self._client = openai.AsyncOpenAI(api_key=key, max_retries=0)
        self.model = model
        self.fallback_model = fallback_model or None
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.summary_max_tokens = summary_max_tokens

    @property
    def provider_name(self) -> str:
        return "openai"

    async def close(self) -> None:
        await self._client.close()

    async def request_analysis(self, transcript: str) -> str:
        """Request an analysis and return the raw message content.

        Raises:
            AuthenticationError: If OpenAI rejects the API key.
            UpstreamError: On rate limits, transport failures, or API errors.
        """
        return await self._request(
            ANALYSIS_SYSTEM,
            ANALYSIS_USER_TEMPLATE.format(transcript=transcript),
            self.max_tokens,
        )

    async def request_summary(self, transcript: str, combine: bool = False) -> str:
        """Request a summary and return the stripped message content."""
        template = SUMMARY_COMBINE_TEMPLATE if combine else SUMMARY_USER_TEMPLATE
        content = await self._request(
            SUMMARY_SYSTEM,
            template.format(transcript=transcript),
            self.summary_max_tokens,
        )
        return content.strip()

    async def _request(self, system: str, user: str, max_tokens: int) -> str:
        try:
            return await self._complete(self.model, system, user, max_tokens)
        except openai.RateLimitError as exc:
            if not self.fallback_model or self.fallback_model == self.model:
                raise self._translate(exc) from exc
            logger.warning(
                "Rate limited on %s, retrying once with %s",
                self.model,
                self.fallback_model,
            )

        try:
            return await self._complete(self.fallback_model, system, user, max_tokens)
        except openai.OpenAIError as exc:
            raise self._translate(exc) from exc

    async def _complete(self, model: str, system: str, user: str, max_tokens: int) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=self.temperature,
                max_tokens=max_tokens,
            )
        except openai.RateLimitError:
            raise
        except openai.OpenAIError as exc:
            raise self._translate(exc) from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def _translate(self, exc: Exception) -> Exception:
        """Map an OpenAI SDK error onto the pipeline error taxonomy."""
        if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return AuthenticationError(
                f"OpenAI rejected credentials: {exc}",
                provider=self.provider_name,
            )
        if isinstance(exc, openai.RateLimitError):
            return UpstreamError(
                f"OpenAI rate limit exceeded: {exc}",
                provider=self.provider_name,
                status_code=429,
                transient=True,
            )
        if isinstance(exc, openai.APIConnectionError):
            # Includes APITimeoutError
            return UpstreamError(
                f"OpenAI request failed: {exc}",
                provider=self.provider_name,
                transient=True,
            )
        if isinstance(exc, openai.APIStatusError):
            return UpstreamError(
                f"OpenAI API error: HTTP {exc.status_code} - {exc.message}",
                provider=self.provider_name,
                status_code=exc.status_code,
                transient=exc.status_code >= 500,
            )
        return UpstreamError(f"OpenAI request failed: {exc}", provider=self.provider_name)
