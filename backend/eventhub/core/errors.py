# eventhub/core/errors.py
from __future__ import annotations

from enum import Enum


class EventHubError(Exception):
    """Base class for domain errors raised inside the service."""


class FetchErrorKind(str, Enum):
    UPSTREAM_UNREACHABLE = "upstream_unreachable"
    UPSTREAM_STATUS = "upstream_status"
    TIMEOUT = "timeout"
    PARSE_FAILURE = "parse_failure"


class FetchError(EventHubError):
    """The source as a whole could not be fetched or understood. Fails the sync run."""

    def __init__(self, kind: FetchErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ParseError(EventHubError):
    """A single item in an otherwise readable payload is malformed. Counted as skipped."""


class ValidationError(EventHubError):
    """A normalized draft lacks a required field. Counted as skipped."""


class SyncInProgressError(EventHubError):
    def __init__(self, source_id: int):
        super().__init__(f"Source {source_id} is already syncing")
        self.source_id = source_id


class SourceNotFoundError(EventHubError):
    def __init__(self, source_id: int):
        super().__init__(f"Source {source_id} not found")
        self.source_id = source_id
