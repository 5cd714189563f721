"""Custom exceptions for the event media pipeline."""

from __future__ import annotations

from typing import Optional


class EventMediaError(Exception):
    """Base exception for all event media pipeline errors."""


class ConfigurationError(EventMediaError):
    """Error raised for invalid configuration options."""


class FetchError(EventMediaError):
    """Error raised when remote media cannot be retrieved."""

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class OversizeError(FetchError):
    """Error raised when remote media exceeds the size ceiling.

    This is a policy outcome: callers count the item as skipped, not failed.
    """

    def __init__(self, url: str, limit: int, size: Optional[int] = None):
        shown = f"{size} bytes" if size is not None else "more than the limit"
        super().__init__(f"Media is {shown}, limit is {limit} bytes", url=url)
        self.limit = limit
        self.size = size


class TaggingError(EventMediaError):
    """Error raised when the tagging backend cannot classify an image."""


class PersistenceError(EventMediaError):
    """Error raised when a read or write against the persistence layer fails."""


class StorageError(EventMediaError):
    """Error raised when media cannot be written to object storage."""


class ScopeNotFoundError(EventMediaError):
    """Error raised when the target event does not exist."""

    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class AlbumAccessError(EventMediaError):
    """Error raised when a shared album cannot be resolved or read."""


class BatchAbortedError(EventMediaError):
    """Error raised when a batch terminates with a fatal error event."""


class ChannelClosedError(EventMediaError):
    """Error raised when writing to a progress channel after its terminal event."""
