"""ASR post-processing: flatten a transcript to plain text."""

from transcription_pipeline.asr.interface import Transcript


def flatten_transcript(transcript: Transcript) -> str:
    """Concatenate every element value across monologues in document order.

    Values are joined by single spaces and the result is trimmed. Empty
    values are skipped.

    Args:
        transcript: Transcript with speaker monologues.

    Returns:
        Plain text. Empty string for empty transcripts.
    """
    values = [
        element.value
        for monologue in transcript.monologues
        for element in monologue.elements
        if element.value
    ]
    return " ".join(values).strip()
