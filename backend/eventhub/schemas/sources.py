from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from eventhub.models.event_source import SourceKind, SyncStatus

_SCHEMES = ("http://", "https://", "webcal://")


def _check_url(value: str) -> str:
    value = value.strip()
    if not value.lower().startswith(_SCHEMES):
        raise ValueError("url must start with http://, https:// or webcal://")
    return value


class SourceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1, max_length=2048)
    source_kind: Optional[SourceKind] = None  # detected from the URL when omitted
    is_active: bool = True

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        return _check_url(v)


class SourceUpdate(BaseModel):
    """Partial update. source_kind is fixed at creation, so it is rejected as an extra field."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, min_length=1, max_length=2048)
    is_active: Optional[bool] = None

    @field_validator("url")
    @classmethod
    def check_url(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_url(v)


class SourceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    source_kind: SourceKind
    url: str
    is_active: bool
    last_synced_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    events_imported: int = 0
    sync_status: SyncStatus
    owner_id: Optional[int] = None
    created_at: Optional[datetime] = None


class SyncCounters(BaseModel):
    inserted: int
    updated: int
    unchanged: int
    skipped: int
    errors: List[str]


class SyncSummary(BaseModel):
    total_inserted: int
    total_updated: int
    total_unchanged: int
    total_skipped: int
    failed_sources: int
