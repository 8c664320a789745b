"""Transcription provider clients and the settings-driven lookup."""

from transcription_pipeline.asr.registry import get_transcription_provider

__all__ = ["get_transcription_provider"]
