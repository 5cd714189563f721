"""Factory classes for creating configured service instances."""

from dataclasses import dataclass
from typing import Optional

import aioboto3
import httpx
from google import genai
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import firestore

from ..adapters.album import GooglePhotosAlbumSource
from ..adapters.fetcher import RemoteMediaFetcher
from ..adapters.firestore import FirestoreUploadRepository
from ..adapters.storage import S3MediaStore
from ..adapters.tagging import DemoTaggingBackend, GeminiTaggingBackend, VisionTaggingBackend
from .exceptions import ConfigurationError
from .logging_config import ROOT_LOGGER_NAME
from .models import PipelineConfig
from .observability import StructuredLogger
from .orchestrator import BatchOrchestrator
from .protocols import (
    AlbumSource,
    LoggerProtocol,
    MediaFetcher,
    MediaStore,
    TaggingBackend,
    UploadRepository,
)
from .services import AlbumImportJob, DirectUploadService, OutcomeRecorder, TaggingJob


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str = ROOT_LOGGER_NAME) -> LoggerProtocol:
        """Create a structured logger writing through the configured handlers."""
        return StructuredLogger(name)


class HttpClientFactory:
    """Factory for the shared outbound HTTP client."""

    @staticmethod
    def create_http_client(config: PipelineConfig) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout),
            headers={"User-Agent": config.user_agent},
        )


class TaggingBackendFactory:
    """Selects the tagging backend once, from the configured credentials."""

    @staticmethod
    def create_backend(
        config: PipelineConfig,
        http_client: httpx.AsyncClient,
        logger: Optional[LoggerProtocol] = None,
    ) -> TaggingBackend:
        """
        Gemini wins over Cloud Vision; with neither key set the demo backend
        is returned and a warning is logged.
        """
        if config.gemini_api_key:
            client = genai.Client(api_key=config.gemini_api_key)
            return GeminiTaggingBackend(client, config)
        if config.vision_api_key:
            return VisionTaggingBackend(http_client, config.vision_api_key, config)
        if logger is not None:
            logger.warning(
                "No tagging credential configured; uploads will receive demo tags"
            )
        return DemoTaggingBackend()


class PersistenceFactory:
    """Factory for the Firestore repository and the S3 media store."""

    @staticmethod
    def create_repository(config: PipelineConfig) -> UploadRepository:
        try:
            client = firestore.AsyncClient(project=config.firestore_project)
        except DefaultCredentialsError as e:
            raise ConfigurationError(f"Firestore credentials unavailable: {e}") from e
        return FirestoreUploadRepository(client)

    @staticmethod
    def create_store(config: PipelineConfig) -> Optional[MediaStore]:
        """Return None when no bucket is configured; imports are then unavailable."""
        if not config.storage_bucket:
            return None
        return S3MediaStore(
            aioboto3.Session(),
            config.storage_bucket,
            endpoint_url=config.storage_endpoint_url,
            public_base_url=config.storage_public_base_url,
            max_attempts=config.retry_attempts,
            retry_delay=config.retry_initial_delay,
        )


@dataclass
class PipelineServices:
    """Everything the API and CLI need to run batches, wired once at startup."""

    config: PipelineConfig
    logger: LoggerProtocol
    repository: UploadRepository
    recorder: OutcomeRecorder
    fetcher: MediaFetcher
    backend: TaggingBackend
    album_source: AlbumSource
    orchestrator: BatchOrchestrator
    store: Optional[MediaStore] = None
    upload_service: Optional[DirectUploadService] = None
    http_client: Optional[httpx.AsyncClient] = None

    def tagging_job(self, event_id: str) -> TaggingJob:
        return TaggingJob(
            event_id,
            self.repository,
            self.recorder,
            self.fetcher,
            self.backend,
            self.config,
            self.logger,
        )

    def import_job(
        self, event_id: str, album_url: str, uploaded_by: Optional[str] = None
    ) -> AlbumImportJob:
        if self.store is None:
            raise ConfigurationError("Media storage is not configured (set STORAGE_BUCKET)")
        return AlbumImportJob(
            event_id,
            album_url,
            self.album_source,
            self.fetcher,
            self.store,
            self.repository,
            self.logger,
            uploaded_by=uploaded_by,
        )

    async def aclose(self) -> None:
        await self.backend.aclose()
        if self.http_client is not None:
            await self.http_client.aclose()


class PipelineFactory:
    """Factory for creating the complete pipeline."""

    @staticmethod
    def create_services(
        config: Optional[PipelineConfig] = None,
        repository: Optional[UploadRepository] = None,
        store: Optional[MediaStore] = None,
        backend: Optional[TaggingBackend] = None,
        fetcher: Optional[MediaFetcher] = None,
        album_source: Optional[AlbumSource] = None,
        logger: Optional[LoggerProtocol] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> PipelineServices:
        """Create fully configured services; any dependency may be injected."""
        if config is None:
            config = PipelineConfig.from_env()
        if logger is None:
            logger = LoggerFactory.create_logger()

        # Only a client created here is closed by PipelineServices.aclose
        owned_client = None
        if http_client is None:
            http_client = owned_client = HttpClientFactory.create_http_client(config)

        if repository is None:
            repository = PersistenceFactory.create_repository(config)
        if store is None:
            store = PersistenceFactory.create_store(config)
        if backend is None:
            backend = TaggingBackendFactory.create_backend(config, http_client, logger)
        if fetcher is None:
            fetcher = RemoteMediaFetcher(http_client, config.user_agent, config.max_bytes)
        if album_source is None:
            album_source = GooglePhotosAlbumSource(http_client, config.user_agent)

        logger.info(f"Tagging backend: {backend.name}")

        return PipelineServices(
            config=config,
            logger=logger,
            repository=repository,
            recorder=OutcomeRecorder(repository),
            fetcher=fetcher,
            backend=backend,
            album_source=album_source,
            orchestrator=BatchOrchestrator(config, logger),
            store=store,
            upload_service=DirectUploadService(store, repository, logger) if store else None,
            http_client=owned_client,
        )
