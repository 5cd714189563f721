"""Shared data models for the event media pipeline."""

import os
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field

from .exceptions import ConfigurationError
from .media_utils import mime_type_for_url

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
DEFAULT_VIDEO_TAGS = ("video", "event", "motion")
PLACEHOLDER_PREFIX = "your_"

MediaKind = Literal["photo", "video"]
TagStatus = Literal["tagged", "demo", "skipped", "failed"]
OutcomeStatus = Literal["succeeded", "skipped", "failed"]


def _credential(value: Optional[str]) -> Optional[str]:
    """Treat empty and template placeholder values as missing."""
    if not value or value.startswith(PLACEHOLDER_PREFIX):
        return None
    return value


def _env_number(environ: Mapping[str, str], name: str, cast: Any) -> Optional[Any]:
    raw = environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


class PipelineConfig(BaseModel):
    """Configuration for ingestion and tagging batches."""

    concurrency: int = Field(default=3, ge=1)
    max_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    max_tags: int = Field(default=10, ge=1)
    max_tag_length: int = 40
    retry_attempts: int = Field(default=3, ge=1)
    retry_initial_delay: float = 1.0
    retry_backoff_factor: float = 2.0
    batch_timeout: float = 300.0
    request_timeout: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    vision_api_key: Optional[str] = None
    max_dimension: int = 1280
    firestore_project: Optional[str] = None
    storage_bucket: Optional[str] = None
    storage_endpoint_url: Optional[str] = None
    storage_public_base_url: Optional[str] = None
    debug: bool = False

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any
    ) -> "PipelineConfig":
        """
        Build a configuration from environment variables.

        Unset variables keep the model defaults; keyword overrides win over
        the environment.

        Raises:
            ConfigurationError: If a numeric variable does not parse or a
                value is out of range.
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {
            "concurrency": _env_number(env, "TAGGING_CONCURRENCY", int),
            "max_bytes": _env_number(env, "MAX_MEDIA_BYTES", int),
            "max_tags": _env_number(env, "MAX_TAGS", int),
            "retry_attempts": _env_number(env, "TAGGING_RETRIES", int),
            "batch_timeout": _env_number(env, "BATCH_TIMEOUT_SECONDS", float),
            "request_timeout": _env_number(env, "HTTP_TIMEOUT_SECONDS", float),
            "max_dimension": _env_number(env, "TAGGING_MAX_DIMENSION", int),
            "user_agent": env.get("FETCH_USER_AGENT"),
            "gemini_api_key": _credential(env.get("GEMINI_API_KEY") or env.get("GOOGLE_API_KEY")),
            "gemini_model": env.get("GEMINI_MODEL"),
            "vision_api_key": _credential(env.get("GOOGLE_CLOUD_VISION_KEY")),
            "firestore_project": env.get("FIREBASE_PROJECT_ID"),
            "storage_bucket": env.get("STORAGE_BUCKET"),
            "storage_endpoint_url": env.get("STORAGE_ENDPOINT_URL"),
            "storage_public_base_url": env.get("STORAGE_PUBLIC_BASE_URL"),
        }
        values = {key: value for key, value in values.items() if value is not None}
        values.update(overrides)
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc


class WorkItem(BaseModel):
    """An upload to be tagged, as read at batch start."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    event_id: str
    source_url: str
    media_kind: MediaKind = "photo"
    file_name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    tag_status: Optional[TagStatus] = None

    @classmethod
    def from_record(cls, item_id: str, data: Mapping[str, Any]) -> "WorkItem":
        """Build a work item from a stored upload record."""
        tags = data.get("ai_tags")
        metadata = data.get("metadata") or {}
        status = data.get("ai_tag_status")
        return cls(
            item_id=item_id,
            event_id=data.get("event_id", ""),
            source_url=data.get("file_url", ""),
            media_kind="video" if data.get("file_type") == "video" else "photo",
            file_name=metadata.get("original_name"),
            tags=[t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
            tag_status=status if status in get_args(TagStatus) else None,
        )

    @property
    def is_tagged(self) -> bool:
        return bool(self.tags)

    @property
    def needs_tagging(self) -> bool:
        return not self.is_tagged and self.tag_status != "skipped"

    @property
    def mime_type(self) -> str:
        if self.media_kind == "video":
            return "video/mp4"
        return mime_type_for_url(self.source_url)


class AlbumMedia(BaseModel):
    """One entry of a shared photo album."""

    uid: str
    url: str
    width: int
    height: int
    image_update_date: Optional[int] = None
    album_add_date: Optional[int] = None

    @property
    def full_res_url(self) -> str:
        return f"{self.url}=w{self.width}-h{self.height}"

    @property
    def mime_type(self) -> str:
        return mime_type_for_url(self.url)


class FetchedMedia(BaseModel):
    """Raw bytes retrieved from a remote source."""

    url: str
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class UploadRecord(BaseModel):
    """A stored upload, as created by imports and direct uploads."""

    event_id: str
    uploaded_by: Optional[str] = None
    file_type: MediaKind
    file_url: str
    file_size: int
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ItemOutcome(BaseModel):
    """Result of processing a single work item."""

    item_id: str
    status: OutcomeStatus
    file_name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    error: str = ""
    duration: float = 0.0


class BatchResult(BaseModel):
    """Aggregate counters for one batch run."""

    model_config = ConfigDict(populate_by_name=True)

    attempted: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    message: str = ""
    last_error: Optional[str] = Field(default=None, alias="lastError")
    demo: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def imported(self) -> int:
        return self.succeeded

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return self.attempted

    @property
    def visited(self) -> int:
        return self.succeeded + self.skipped + self.failed

    @property
    def is_complete(self) -> bool:
        return self.visited == self.attempted


class StatusEvent(BaseModel):
    type: Literal["status"] = "status"
    message: str
    total: Optional[int] = None


class ItemProgressEvent(BaseModel):
    """Running counts after one item completed."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["progress"] = "progress"
    imported: int
    skipped: int = 0
    failed: int
    current: int
    total: int
    item_id: Optional[str] = Field(default=None, alias="itemId")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    error: Optional[str] = None


class CompleteEvent(BatchResult):
    """Terminal event carrying the final batch result."""

    type: Literal["complete"] = "complete"

    @classmethod
    def from_result(cls, result: BatchResult) -> "CompleteEvent":
        return cls.model_validate(result.model_dump())

    def to_result(self) -> BatchResult:
        return BatchResult.model_validate(self.model_dump(exclude={"type"}))


class ErrorEvent(BaseModel):
    """Terminal event for a batch that aborted before completion."""

    type: Literal["error"] = "error"
    message: str


ProgressEvent = Annotated[
    Union[StatusEvent, ItemProgressEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = frozenset({"complete", "error"})
