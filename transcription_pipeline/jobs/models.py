"""Job record and status enums shared by every component.

A Job maps one-to-one onto a row of the ``transcriptions`` table. Column
names differ from attribute names where the table predates this package
(``user_id``, ``rev_ai_job_id``).
"""

from __future__ import annotations

import mimetypes
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from urllib.parse import unquote, urlparse


class JobStatus(StrEnum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class AnalysisStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


# attribute name -> column name, only where they differ
_COLUMN_NAMES: dict[str, str] = {
    "owner_id": "user_id",
    "external_job_id": "rev_ai_job_id",
}
_ATTRIBUTE_NAMES: dict[str, str] = {v: k for k, v in _COLUMN_NAMES.items()}

DEFAULT_FILE_NAME = "audio"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def new_job_id() -> str:
    return str(uuid.uuid4())


def column_name(attribute: str) -> str:
    """Return the table column that stores a Job attribute."""
    return _COLUMN_NAMES.get(attribute, attribute)


def describe_media(media_url: str, file_name: str | None = None) -> tuple[str, str, str]:
    """Derive (file_name, media_path, content_type) from a media URL.

    The ``transcriptions`` table requires all three, so a URL without a
    usable last path segment falls back to ``DEFAULT_FILE_NAME``.
    """
    path = unquote(urlparse(media_url).path).lstrip("/")
    name = file_name or path.rsplit("/", 1)[-1] or DEFAULT_FILE_NAME
    content_type = mimetypes.guess_type(name)[0] or DEFAULT_CONTENT_TYPE
    return name, path or name, content_type


@dataclass
class Job:
    """A single submitted media file and its transcription/analysis progress."""

    id: str
    owner_id: str
    status: JobStatus = JobStatus.PROCESSING
    analysis_status: AnalysisStatus = AnalysisStatus.PENDING
    summary_status: AnalysisStatus = AnalysisStatus.PENDING
    external_job_id: str | None = None
    transcription_text: str = ""
    analysis_data: dict[str, Any] = field(default_factory=dict)
    summary_text: str | None = None
    error: str | None = None
    media_url: str | None = None
    file_name: str | None = None
    media_path: str | None = None
    file_size: int = 0
    content_type: str | None = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @classmethod
    def new(
        cls,
        owner_id: str,
        media_url: str,
        file_name: str | None = None,
        file_size: int | None = None,
        content_type: str | None = None,
    ) -> Job:
        """Create a fresh processing job with a locally generated id.

        Media columns the caller does not supply are derived from the URL.
        """
        name, media_path, guessed_type = describe_media(media_url, file_name)
        return cls(
            id=new_job_id(),
            owner_id=owner_id,
            media_url=media_url,
            file_name=name,
            media_path=media_path,
            file_size=file_size or 0,
            content_type=content_type or guessed_type,
        )

    def to_row(self) -> dict[str, Any]:
        """Serialize to a dict keyed by table column names."""
        row: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, StrEnum):
                value = value.value
            row[column_name(f.name)] = value
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Job:
        """Deserialize a table row, tolerating nulls and unknown columns."""
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in row.items():
            name = _ATTRIBUTE_NAMES.get(key, key)
            if name in known:
                values[name] = value

        values["status"] = JobStatus(values.get("status") or JobStatus.PROCESSING)
        for stage in ("analysis_status", "summary_status"):
            values[stage] = AnalysisStatus(values.get(stage) or AnalysisStatus.PENDING)
        values["file_size"] = values.get("file_size") or 0
        values["transcription_text"] = values.get("transcription_text") or ""
        values["analysis_data"] = values.get("analysis_data") or {}
        for timestamp in ("created_at", "updated_at"):
            if not values.get(timestamp):
                values.pop(timestamp, None)
        return cls(**values)

    def with_changes(self, **changes: Any) -> Job:
        """Return a copy with the given attributes replaced."""
        if "status" in changes:
            changes["status"] = JobStatus(changes["status"])
        for stage in ("analysis_status", "summary_status"):
            if stage in changes:
                changes[stage] = AnalysisStatus(changes[stage])
        return replace(self, **changes)
