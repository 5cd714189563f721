"""Service implementations for the ingestion and tagging workflows."""

from typing import Any, Callable, Dict, List, Optional

from .exceptions import (
    FetchError,
    OversizeError,
    PersistenceError,
    ScopeNotFoundError,
    StorageError,
)
from .media_utils import (
    calculate_storage_key,
    ensure_tags,
    extract_image_info,
    media_kind_for_mime,
    new_file_id,
    normalize_tags,
)
from .models import (
    DEFAULT_VIDEO_TAGS,
    AlbumMedia,
    BatchResult,
    ItemOutcome,
    PipelineConfig,
    UploadRecord,
    WorkItem,
)
from .observability import LogContext
from .protocols import (
    AlbumSource,
    BatchJob,
    LoggerProtocol,
    MediaFetcher,
    MediaStore,
    TaggingBackend,
    UploadRepository,
)

DEMO_CREDENTIAL_HINT = "Set GEMINI_API_KEY or GOOGLE_CLOUD_VISION_KEY for real AI tagging."


class OutcomeRecorder:
    """
    Persists the outcome of one work item.

    Every write is a plain field set on one record, so recording the same
    outcome twice leaves the same state. Any repository failure surfaces as
    ``PersistenceError``.
    """

    def __init__(self, repository: UploadRepository):
        self._repository = repository

    async def record_tags(self, item_id: str, tags: List[str], demo: bool = False) -> None:
        await self._write(
            item_id,
            {
                "ai_tags": list(tags),
                "ai_tag_status": "demo" if demo else "tagged",
                "ai_tag_error": None,
            },
        )

    async def record_skip(self, item_id: str, reason: str) -> None:
        await self._write(item_id, {"ai_tag_status": "skipped", "ai_tag_error": reason})

    async def record_failure(self, item_id: str, error: str) -> None:
        await self._write(item_id, {"ai_tag_status": "failed", "ai_tag_error": error})

    async def _write(self, item_id: str, fields: Dict[str, Any]) -> None:
        try:
            await self._repository.update_upload(item_id, fields)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to update upload {item_id}: {e}") from e


async def require_event(repository: UploadRepository, event_id: str) -> Dict[str, Any]:
    """
    Load the event or fail.

    Raises:
        ScopeNotFoundError: If the event does not exist.
        PersistenceError: If the persistence layer is unreachable.
    """
    try:
        event = await repository.get_event(event_id)
    except PersistenceError:
        raise
    except Exception as e:
        raise PersistenceError(f"Failed to load event {event_id}: {e}") from e
    if event is None:
        raise ScopeNotFoundError(event_id)
    return event


class TaggingJob(BatchJob[WorkItem]):
    """Tags every upload of one event that has no tags yet."""

    name = "tagging"
    empty_message = "All uploads already analyzed"

    def __init__(
        self,
        event_id: str,
        repository: UploadRepository,
        recorder: OutcomeRecorder,
        fetcher: MediaFetcher,
        backend: TaggingBackend,
        config: PipelineConfig,
        logger: LoggerProtocol,
    ):
        self._event_id = event_id
        self._repository = repository
        self._recorder = recorder
        self._fetcher = fetcher
        self._backend = backend
        self._config = config
        self._logger = logger
        self._log_context = LogContext(
            operation="tag_upload", component="tagging_job"
        ).with_metadata(event_id=event_id, backend=backend.name)

    @property
    def is_demo(self) -> bool:
        return self._backend.is_demo

    def item_id(self, item: WorkItem) -> str:
        return item.item_id

    async def enumerate(self, notify: Callable[[str], None]) -> List[WorkItem]:
        notify("Looking for untagged uploads...")
        try:
            uploads = await self._repository.list_uploads(self._event_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to list uploads for event {self._event_id}: {e}") from e
        pending = [upload for upload in uploads if upload.needs_tagging]
        self._logger.info(
            f"Found {len(pending)} of {len(uploads)} uploads needing tags",
            self._log_context,
        )
        return pending

    async def process(self, item: WorkItem) -> ItemOutcome:
        context = self._log_context.with_metadata(item_id=item.item_id)
        outcome = ItemOutcome(item_id=item.item_id, status="failed", file_name=item.file_name)

        if item.media_kind == "video":
            tags = list(DEFAULT_VIDEO_TAGS)
            self._logger.debug("Applying default video tags", context)
        else:
            try:
                tags = await self._classify(item)
            except OversizeError as e:
                outcome.error = str(e)
                try:
                    await self._recorder.record_skip(item.item_id, str(e))
                except PersistenceError as write_error:
                    outcome.error = str(write_error)
                    return outcome
                outcome.status = "skipped"
                return outcome
            except Exception as e:
                outcome.error = str(e) or type(e).__name__
                await self._record_best_effort(
                    self._recorder.record_failure, item.item_id, outcome.error, context
                )
                return outcome

        try:
            await self._recorder.record_tags(item.item_id, tags, demo=self._backend.is_demo)
        except PersistenceError as e:
            outcome.error = str(e)
            return outcome

        outcome.status = "succeeded"
        outcome.tags = tags
        return outcome

    async def _classify(self, item: WorkItem) -> List[str]:
        if self._backend.requires_media:
            media = await self._fetcher.fetch(item.source_url)
            data, mime_type = media.data, media.mime_type
        else:
            data, mime_type = b"", item.mime_type
        raw = await self._backend.classify(data, mime_type)
        return ensure_tags(
            normalize_tags(raw, self._config.max_tags, self._config.max_tag_length)
        )

    async def _record_best_effort(
        self, write: Callable[..., Any], item_id: str, reason: str, context: LogContext
    ) -> None:
        try:
            await write(item_id, reason)
        except PersistenceError as e:
            self._logger.warning(f"Could not record outcome: {e}", context)

    def summarize(self, result: BatchResult) -> str:
        counts = f"({result.skipped} skipped, {result.failed} failed)"
        if result.demo:
            return (
                f"Demo tags applied to {result.succeeded} of {result.attempted} uploads "
                f"{counts}. {DEMO_CREDENTIAL_HINT}"
            )
        return f"Tagged {result.succeeded} of {result.attempted} uploads {counts}."


class AlbumImportJob(BatchJob[AlbumMedia]):
    """Imports every item of a shared album into event storage."""

    name = "import"
    empty_message = "No images found in the album"

    def __init__(
        self,
        event_id: str,
        album_url: str,
        album_source: AlbumSource,
        fetcher: MediaFetcher,
        store: MediaStore,
        repository: UploadRepository,
        logger: LoggerProtocol,
        uploaded_by: Optional[str] = None,
    ):
        self._event_id = event_id
        self._album_url = album_url
        self._album_source = album_source
        self._fetcher = fetcher
        self._store = store
        self._repository = repository
        self._logger = logger
        self._uploaded_by = uploaded_by
        self._log_context = LogContext(
            operation="import_media", component="album_import_job"
        ).with_metadata(event_id=event_id)

    def item_id(self, item: AlbumMedia) -> str:
        return item.uid

    async def enumerate(self, notify: Callable[[str], None]) -> List[AlbumMedia]:
        notify("Resolving album link...")
        resolved = await self._album_source.resolve(self._album_url)
        notify("Extracting images from album...")
        media = await self._album_source.list_media(resolved)
        self._logger.info(f"Album lists {len(media)} items", self._log_context)
        return media

    async def process(self, item: AlbumMedia) -> ItemOutcome:
        outcome = ItemOutcome(item_id=item.uid, status="failed")
        try:
            fetched = await self._fetcher.fetch(item.full_res_url)
        except OversizeError as e:
            outcome.status = "skipped"
            outcome.error = str(e)
            return outcome
        except FetchError as e:
            outcome.error = str(e)
            return outcome

        mime_type = item.mime_type
        file_id = new_file_id()
        key = calculate_storage_key(self._event_id, file_id, mime_type)
        outcome.file_name = key.rsplit("/", 1)[-1]

        try:
            public_url = await self._store.put(key, fetched.data, mime_type)
            await self._repository.create_upload(
                UploadRecord(
                    event_id=self._event_id,
                    uploaded_by=self._uploaded_by,
                    file_type="video" if media_kind_for_mime(mime_type) == "video" else "photo",
                    file_url=public_url,
                    file_size=fetched.size,
                    width=item.width,
                    height=item.height,
                    metadata={
                        "source": "google-photos-import",
                        "original_uid": item.uid,
                        "image_update_date": item.image_update_date,
                        "album_add_date": item.album_add_date,
                    },
                )
            )
        except (StorageError, PersistenceError) as e:
            outcome.error = str(e)
            return outcome

        outcome.status = "succeeded"
        return outcome

    def summarize(self, result: BatchResult) -> str:
        return (
            f"Imported {result.succeeded} of {result.attempted} items "
            f"({result.skipped} skipped, {result.failed} failed)."
        )


class DirectUploadService:
    """Stores files posted directly by a client and records them."""

    def __init__(self, store: MediaStore, repository: UploadRepository, logger: LoggerProtocol):
        self._store = store
        self._repository = repository
        self._logger = logger

    async def upload(
        self,
        event_id: str,
        files: List[Dict[str, Any]],
        uploaded_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Store each file and create its upload record.

        Args:
            event_id: Target event (must already exist)
            files: Dicts with ``file_name``, ``content_type`` and ``data``
            uploaded_by: Owner recorded on each upload

        Returns:
            ``imported``, ``failed``, ``total`` counts and per-file ``results``
        """
        context = LogContext(operation="direct_upload", component="direct_upload_service")
        results: List[Dict[str, Any]] = []

        for file in files:
            file_name = file["file_name"]
            data: bytes = file["data"]
            if not data:
                results.append({"fileName": file_name, "success": False, "error": "Empty file"})
                continue

            mime_type = file.get("content_type") or "image/jpeg"
            media_kind = media_kind_for_mime(mime_type)
            key = calculate_storage_key(event_id, new_file_id(), mime_type)
            info = extract_image_info(data) if media_kind == "photo" else {}

            try:
                public_url = await self._store.put(key, data, mime_type)
                await self._repository.create_upload(
                    UploadRecord(
                        event_id=event_id,
                        uploaded_by=uploaded_by,
                        file_type="video" if media_kind == "video" else "photo",
                        file_url=public_url,
                        file_size=len(data),
                        width=info.get("width"),
                        height=info.get("height"),
                        metadata={"source": "direct-upload", "original_name": file_name},
                    )
                )
            except (StorageError, PersistenceError) as e:
                self._logger.error(f"Upload failed: {e}", context.with_metadata(file_name=file_name))
                results.append({"fileName": file_name, "success": False, "error": str(e)})
                continue

            self._logger.info(f"Uploaded {file_name} -> {key}", context)
            results.append({"fileName": file_name, "success": True})

        imported = sum(1 for r in results if r["success"])
        return {
            "imported": imported,
            "failed": len(results) - imported,
            "total": len(files),
            "results": results,
        }
