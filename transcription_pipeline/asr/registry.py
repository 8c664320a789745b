"""Lookup of transcription providers by the TRANSCRIPTION_PROVIDER setting.

Names are matched after normalization, so "rev_ai", "Rev-AI" and "rev.ai"
all select the Rev.ai client.
"""

import re

from transcription_pipeline.asr.interface import TranscriptionProvider
from transcription_pipeline.asr.rev_ai import RevAiProvider
from transcription_pipeline.utils.errors import ConfigurationError

TRANSCRIPTION_PROVIDERS: dict[str, type[TranscriptionProvider]] = {
    RevAiProvider.name: RevAiProvider,
}


def normalize_provider_name(name: str) -> str:
    return re.sub(r"[\s.\-]+", "_", name.strip().lower())


def get_transcription_provider(provider: str, **kwargs: object) -> TranscriptionProvider:
    """Build the provider client configured for this deployment.

    ``kwargs`` go to the client constructor (api_key, base_url, client).

    Raises:
        ConfigurationError: If TRANSCRIPTION_PROVIDER names no known client,
            or the client is missing its credentials.
    """
    provider_cls = TRANSCRIPTION_PROVIDERS.get(normalize_provider_name(provider))
    if provider_cls is None:
        supported = ", ".join(sorted(TRANSCRIPTION_PROVIDERS))
        raise ConfigurationError(
            f"TRANSCRIPTION_PROVIDER '{provider}' is not supported (supported: {supported})",
            setting="TRANSCRIPTION_PROVIDER",
        )
    return provider_cls(**kwargs)
