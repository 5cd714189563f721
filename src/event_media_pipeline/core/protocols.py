"""Protocol definitions for dependency injection and testability."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, List, Optional, Protocol, TypeVar

from .models import AlbumMedia, BatchResult, FetchedMedia, ItemOutcome, UploadRecord, WorkItem

ItemT = TypeVar("ItemT")


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...


class UploadRepository(Protocol):
    """Protocol for the persistence layer holding events and uploads."""

    async def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        """Return the event record, or None when it does not exist."""
        ...

    async def list_uploads(self, event_id: str) -> List[WorkItem]:
        """Return every upload belonging to the event."""
        ...

    async def update_upload(self, upload_id: str, fields: Dict[str, Any]) -> None:
        """Set fields on one upload record."""
        ...

    async def create_upload(self, record: UploadRecord) -> str:
        """Create an upload record and return its identifier."""
        ...


class MediaFetcher(Protocol):
    """Protocol for retrieving remote media bytes."""

    async def fetch(self, url: str) -> FetchedMedia:
        """Fetch media at ``url``."""
        ...


class MediaStore(Protocol):
    """Protocol for object storage of imported media."""

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under ``key`` and return the public URL."""
        ...


class AlbumSource(Protocol):
    """Protocol for shared-album scrapers."""

    def is_valid_album_url(self, url: str) -> bool:
        """Check whether the URL points at a supported album host."""
        ...

    async def resolve(self, url: str) -> str:
        """Expand short links to the full album URL."""
        ...

    async def list_media(self, url: str) -> List[AlbumMedia]:
        """List the media entries of an album."""
        ...


class TaggingBackend(ABC):
    """Abstract classifier turning image bytes into tags."""

    name: str = "tagging"

    @property
    def is_demo(self) -> bool:
        """True when tags are placeholders rather than real classification."""
        return False

    @property
    def requires_media(self) -> bool:
        """True when ``classify`` needs the fetched media bytes."""
        return True

    @abstractmethod
    async def classify(self, data: bytes, mime_type: str) -> List[str]:
        """Return raw tags for the media."""
        ...

    async def aclose(self) -> None:
        """Release network resources held by the backend."""


class BatchJob(ABC, Generic[ItemT]):
    """Abstract unit of batch work driven by the orchestrator."""

    name: str = "batch"
    empty_message: str = "Nothing to process"

    @property
    def is_demo(self) -> bool:
        return False

    @abstractmethod
    async def enumerate(self, notify: Callable[[str], None]) -> List[ItemT]:
        """Return the items to process, emitting status messages via ``notify``."""
        ...

    @abstractmethod
    async def process(self, item: ItemT) -> ItemOutcome:
        """Process one item. Expected failures are reported in the outcome."""
        ...

    @abstractmethod
    def item_id(self, item: ItemT) -> str:
        """Identifier of an item, used before an outcome exists."""
        ...

    def summarize(self, result: BatchResult) -> str:
        """Human summary for a completed batch."""
        return (
            f"Processed {result.attempted} items: {result.succeeded} succeeded, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
