"""Transcript chunking and deterministic merge of per-chunk analyses.

Chunk results are addressed by their position in the transcript, never by
the order in which their requests finished.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from transcription_pipeline.analysis.interface import (
    DEFAULT_SENTIMENT,
    LIST_FIELDS,
    NARRATIVE_FIELDS,
    AnalysisResult,
)

DEFAULT_CHUNK_SIZE = 12000


def split_into_chunks(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Split text into contiguous, non-overlapping chunks of ``chunk_size`` chars.

    Every chunk but the last is exactly ``chunk_size`` long; concatenating
    the chunks reproduces the input.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [text[start : start + chunk_size] for start in range(0, len(text), chunk_size)]


def _identity(item: Any) -> str:
    """Key for exact-value comparison, including unhashable dict items."""
    return json.dumps(item, sort_keys=True, default=str)


def union_unique(lists: Iterable[list[Any]]) -> list[Any]:
    """Union several lists, dropping exact duplicates (first occurrence kept)."""
    seen: set[str] = set()
    merged: list[Any] = []
    for items in lists:
        for item in items:
            key = _identity(item)
            if key in seen:
                continue
            seen.add(key)
            merged.append(item)
    return merged


def majority_sentiment(sentiments: list[str]) -> str:
    """Most frequent sentiment; ties go to the one encountered first."""
    if not sentiments:
        return DEFAULT_SENTIMENT
    counts = Counter(sentiments)
    best = sentiments[0]
    for sentiment in sentiments:
        if counts[sentiment] > counts[best]:
            best = sentiment
    return best


def merge_chunk_results(results: Mapping[int, AnalysisResult]) -> AnalysisResult:
    """Merge per-chunk results keyed by chunk index.

    - list fields: union with exact-value de-duplication
    - sentiment: majority vote over chunks that reported one
    - narrative fields: non-empty values joined in chunk order
    """
    ordered = [results[index] for index in sorted(results)]

    merged = AnalysisResult()
    for name in LIST_FIELDS:
        setattr(merged, name, union_unique(getattr(r, name) for r in ordered))

    detected = [r.sentiment for r in ordered if r.sentiment_detected]
    merged.sentiment = majority_sentiment(detected)
    merged.sentiment_detected = bool(detected)

    for name in NARRATIVE_FIELDS:
        parts = [getattr(r, name).strip() for r in ordered if getattr(r, name).strip()]
        setattr(merged, name, " ".join(parts))

    raw_parts = [r.raw_text for r in ordered if r.raw_text]
    if raw_parts:
        merged.raw_text = "\n\n".join(raw_parts)
    return merged
