"""Analysis response parsing, JSON repair, and normalization.

Repair policy for model output:

1. parse the whole text as JSON
2. parse the substring from the first ``{`` to the last ``}``
3. degrade to ``{"raw_text": <text>}`` so the pipeline still records a result
"""

from __future__ import annotations

import json
import logging
from typing import Any

from transcription_pipeline.analysis.interface import (
    DEFAULT_SENTIMENT,
    LIST_FIELDS,
    AnalysisResult,
)
from transcription_pipeline.utils.errors import ParseError

logger = logging.getLogger(__name__)

DEFAULT_SENTIMENT_EXPLANATION = "No sentiment explanation provided by the AI."
RAW_TEXT_FIELD = "raw_text"

# Accepted spellings per field; the prompt mixes camelCase and snake_case
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "topics": ("topics",),
    "key_insights": ("key_insights", "keyInsights"),
    "action_items": ("action_items", "actionItems"),
    "questions": ("questions",),
    "pain_points": ("pain_points", "painPoints"),
    "feature_requests": ("feature_requests", "featureRequests"),
    "tone_analysis": ("tone_analysis", "toneAnalysis"),
    "sentiment_explanation": ("sentiment_explanation", "sentimentExplanation"),
    "sentiment": ("sentiment",),
}


def parse_json_object(text: str) -> dict[str, Any]:
    """Strictly parse text as a JSON object.

    Raises:
        ParseError: If the text is not valid JSON or not an object.
    """
    try:
        value = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Invalid JSON: {exc}", raw_text=text) from exc
    if not isinstance(value, dict):
        raise ParseError("JSON value is not an object", raw_text=text)
    return value


def repair_json(text: str) -> dict[str, Any]:
    """Parse model output into a dict, never raising.

    Returns:
        The parsed object, or ``{"raw_text": text}`` if nothing parses.
    """
    text = text or ""
    try:
        return parse_json_object(text)
    except ParseError:
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            return parse_json_object(text[start : end + 1])
        except ParseError:
            pass

    logger.warning("Could not extract JSON from analysis response (%d chars)", len(text))
    return {RAW_TEXT_FIELD: text}


def canonicalize_sentiment(raw: Any) -> str:
    """Map a raw sentiment label to positive, negative, or neutral.

    Matching is case-insensitive substring containment, checked in that
    order. Anything else, including missing values, is neutral.
    """
    if not isinstance(raw, str):
        return DEFAULT_SENTIMENT
    label = raw.lower()
    if "positive" in label:
        return "positive"
    if "negative" in label:
        return "negative"
    return DEFAULT_SENTIMENT


def coerce_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


def _lookup(data: dict[str, Any], name: str) -> Any:
    for key in FIELD_ALIASES[name]:
        if key in data:
            return data[key]
    return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def build_result(data: dict[str, Any]) -> AnalysisResult:
    """Normalize a parsed response dict into an AnalysisResult.

    List fields that are missing or not lists become empty lists. Defaults
    for missing narrative fields are not applied here; see apply_defaults().
    """
    raw_sentiment = _lookup(data, "sentiment")
    result = AnalysisResult(
        sentiment=canonicalize_sentiment(raw_sentiment),
        sentiment_detected=isinstance(raw_sentiment, str) and bool(raw_sentiment.strip()),
        sentiment_explanation=_text(_lookup(data, "sentiment_explanation")),
        tone_analysis=_text(_lookup(data, "tone_analysis")),
    )
    for name in LIST_FIELDS:
        setattr(result, name, coerce_list(_lookup(data, name)))
    if RAW_TEXT_FIELD in data and len(data) == 1:
        result.raw_text = data[RAW_TEXT_FIELD]
    return result


def parse_analysis_response(text: str) -> AnalysisResult:
    """Repair, parse, and normalize a raw model response."""
    return build_result(repair_json(text))


def apply_defaults(result: AnalysisResult) -> AnalysisResult:
    """Fill the generated explanation when the model gave none."""
    if not result.sentiment_explanation:
        result.sentiment_explanation = DEFAULT_SENTIMENT_EXPLANATION
    return result
