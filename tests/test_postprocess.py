"""Tests for transcript flattening."""

from transcription_pipeline.asr.interface import (
    Transcript,
    TranscriptElement,
    TranscriptMonologue,
)
from transcription_pipeline.asr.postprocess import flatten_transcript


def _mono(*values: str) -> TranscriptMonologue:
    return TranscriptMonologue(speaker=0, elements=[TranscriptElement(v) for v in values])


class TestFlattenTranscript:
    """Tests for flatten_transcript()."""

    def test_joins_values_across_monologues_in_order(self) -> None:
        transcript = Transcript(monologues=[_mono("Good", "morning"), _mono("Hi", "there")])
        assert flatten_transcript(transcript) == "Good morning Hi there"

    def test_skips_empty_values(self) -> None:
        transcript = Transcript(monologues=[_mono("a", "", "b")])
        assert flatten_transcript(transcript) == "a b"

    def test_trims_result(self) -> None:
        transcript = Transcript(monologues=[_mono(" padded ")])
        assert flatten_transcript(transcript) == "padded"

    def test_empty_transcript(self) -> None:
        assert flatten_transcript(Transcript(monologues=[])) == ""
        assert flatten_transcript(Transcript(monologues=[_mono()])) == ""
