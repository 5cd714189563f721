"""Core models, batch orchestration and shared utilities for the event media pipeline."""

from .error_handling import BatchOperationContext, retry_async, with_error_handling
from .exceptions import (
    AlbumAccessError,
    BatchAbortedError,
    ChannelClosedError,
    ConfigurationError,
    EventMediaError,
    FetchError,
    OversizeError,
    PersistenceError,
    ScopeNotFoundError,
    StorageError,
    TaggingError,
)
from .logging_config import enable_debug_logging, get_logger, log_to_stderr, setup_logger
from .media_utils import calculate_storage_key, ensure_tags, normalize_tags
from .models import (
    AlbumMedia,
    BatchResult,
    CompleteEvent,
    ErrorEvent,
    ItemOutcome,
    ItemProgressEvent,
    PipelineConfig,
    StatusEvent,
    UploadRecord,
    WorkItem,
)
from .orchestrator import BatchOrchestrator
from .progress import ProgressChannel, decode_event, encode_event

__all__ = [
    "PipelineConfig",
    "WorkItem",
    "AlbumMedia",
    "UploadRecord",
    "ItemOutcome",
    "BatchResult",
    "StatusEvent",
    "ItemProgressEvent",
    "CompleteEvent",
    "ErrorEvent",
    "BatchOrchestrator",
    "ProgressChannel",
    "encode_event",
    "decode_event",
    "calculate_storage_key",
    "normalize_tags",
    "ensure_tags",
    "setup_logger",
    "get_logger",
    "enable_debug_logging",
    "log_to_stderr",
    "EventMediaError",
    "ConfigurationError",
    "FetchError",
    "OversizeError",
    "TaggingError",
    "PersistenceError",
    "StorageError",
    "ScopeNotFoundError",
    "AlbumAccessError",
    "BatchAbortedError",
    "ChannelClosedError",
    "with_error_handling",
    "retry_async",
    "BatchOperationContext",
]
