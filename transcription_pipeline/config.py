"""Process configuration loaded from environment variables.

Credentials stay optional here; each client raises ConfigurationError
when it is constructed without the ones it needs.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from transcription_pipeline.utils.errors import ConfigurationError


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'", setting=name) from exc


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'", setting=name) from exc


@dataclass(frozen=True)
class Settings:
    rev_ai_api_key: str = ""
    rev_ai_base_url: str = "https://api.rev.ai/speechtotext/v1"
    transcription_provider: str = "rev_ai"
    webhook_callback_url: str | None = None
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_table: str = "transcriptions"
    openai_api_key: str = ""
    openai_model: str = "gpt-4"
    openai_fallback_model: str = "gpt-3.5-turbo"
    openai_summary_max_tokens: int = 500
    analysis_chunk_size: int = 12000
    analysis_timeout_seconds: float = 300.0
    analysis_max_concurrency: int = 3
    poll_max_attempts: int = 30
    poll_delay_seconds: float = 10.0
    retry_max_attempts: int = 3
    retry_initial_delay: float = 0.5
    retry_backoff_factor: float = 1.5
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build Settings from ``env`` (default: os.environ).

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed.
        """
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            rev_ai_api_key=env.get("REV_AI_API_KEY", ""),
            rev_ai_base_url=env.get("REV_AI_BASE_URL", "") or defaults.rev_ai_base_url,
            transcription_provider=(
                env.get("TRANSCRIPTION_PROVIDER", "") or defaults.transcription_provider
            ),
            webhook_callback_url=env.get("WEBHOOK_CALLBACK_URL") or None,
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            supabase_table=env.get("SUPABASE_TABLE", "") or defaults.supabase_table,
            openai_api_key=env.get("OPENAI_API_KEY", ""),
            openai_model=env.get("OPENAI_MODEL", "") or defaults.openai_model,
            openai_fallback_model=(
                env.get("OPENAI_FALLBACK_MODEL", "") or defaults.openai_fallback_model
            ),
            openai_summary_max_tokens=_get_int(
                env, "OPENAI_SUMMARY_MAX_TOKENS", defaults.openai_summary_max_tokens
            ),
            analysis_chunk_size=_get_int(
                env, "ANALYSIS_CHUNK_SIZE", defaults.analysis_chunk_size
            ),
            analysis_timeout_seconds=_get_float(
                env, "ANALYSIS_TIMEOUT_SECONDS", defaults.analysis_timeout_seconds
            ),
            analysis_max_concurrency=_get_int(
                env, "ANALYSIS_MAX_CONCURRENCY", defaults.analysis_max_concurrency
            ),
            poll_max_attempts=_get_int(env, "POLL_MAX_ATTEMPTS", defaults.poll_max_attempts),
            poll_delay_seconds=_get_float(
                env, "POLL_DELAY_SECONDS", defaults.poll_delay_seconds
            ),
            retry_max_attempts=_get_int(
                env, "RETRY_MAX_ATTEMPTS", defaults.retry_max_attempts
            ),
            retry_initial_delay=_get_float(
                env, "RETRY_INITIAL_DELAY", defaults.retry_initial_delay
            ),
            retry_backoff_factor=_get_float(
                env, "RETRY_BACKOFF_FACTOR", defaults.retry_backoff_factor
            ),
            host=env.get("HOST", "") or defaults.host,
            port=_get_int(env, "PORT", defaults.port),
            log_level=(env.get("LOG_LEVEL", "") or defaults.log_level).upper(),
        )
