"""HTTP API: analyze uploads, import shared albums and accept direct uploads."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from .core.exceptions import BatchAbortedError, PersistenceError, ScopeNotFoundError
from .core.factories import PipelineFactory, PipelineServices
from .core.models import PipelineConfig
from .core.progress import encode_stream
from .core.services import require_event

NDJSON_MEDIA_TYPE = "application/x-ndjson"
STREAM_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}

router = APIRouter()


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: Optional[str] = Field(default=None, alias="eventId")
    stream: bool = False


class ImportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    album_url: Optional[str] = Field(default=None, alias="albumUrl")
    event_id: Optional[str] = Field(default=None, alias="eventId")


def get_services(request: Request) -> PipelineServices:
    return request.app.state.services


async def load_event(services: PipelineServices, event_id: str) -> Dict[str, Any]:
    """Look up the event, mapping lookup failures to 404 and 503."""
    try:
        return await require_event(services.repository, event_id)
    except ScopeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PersistenceError as e:
        services.logger.error(f"Event lookup failed: {e}")
        raise HTTPException(
            status_code=503, detail="Database connection error. Check server config."
        ) from e


def ndjson_response(events: AsyncIterator[Any]) -> StreamingResponse:
    return StreamingResponse(
        encode_stream(events), media_type=NDJSON_MEDIA_TYPE, headers=STREAM_HEADERS
    )


@router.get("/health")
async def health(services: PipelineServices = Depends(get_services)) -> Dict[str, str]:
    return {"status": "ok", "tagging_backend": services.backend.name}


@router.post("/api/analyze-uploads")
async def analyze_uploads(
    body: AnalyzeRequest, services: PipelineServices = Depends(get_services)
) -> Any:
    """
    Tag every untagged upload of an event.

    With ``stream`` set the response is an NDJSON progress stream; otherwise
    the final batch result is returned once the batch has finished.
    """
    if not body.event_id:
        raise HTTPException(status_code=400, detail="eventId is required")
    await load_event(services, body.event_id)

    job = services.tagging_job(body.event_id)
    if body.stream:
        return ndjson_response(services.orchestrator.stream(job))

    try:
        result = await services.orchestrator.run(job)
    except BatchAbortedError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return JSONResponse(result.model_dump(by_alias=True, exclude_none=True))


@router.post("/api/import-google-photos")
async def import_google_photos(
    body: ImportRequest, services: PipelineServices = Depends(get_services)
) -> StreamingResponse:
    if not body.album_url or not body.event_id:
        raise HTTPException(status_code=400, detail="albumUrl and eventId are required")
    if not services.album_source.is_valid_album_url(body.album_url):
        raise HTTPException(
            status_code=400,
            detail="Invalid Google Photos URL. Use a photos.app.goo.gl or photos.google.com link.",
        )
    if services.store is None:
        raise HTTPException(status_code=503, detail="Media storage is not configured")

    event = await load_event(services, body.event_id)
    job = services.import_job(body.event_id, body.album_url, uploaded_by=event.get("created_by"))
    return ndjson_response(services.orchestrator.stream(job))


@router.post("/api/upload-photos")
async def upload_photos(
    event_id: Optional[str] = Form(default=None, alias="eventId"),
    files: Optional[List[UploadFile]] = File(default=None),
    services: PipelineServices = Depends(get_services),
) -> Dict[str, Any]:
    if not event_id:
        raise HTTPException(status_code=400, detail="eventId is required")
    if services.upload_service is None:
        raise HTTPException(status_code=503, detail="Media storage is not configured")

    event = await load_event(services, event_id)
    if not files:
        raise HTTPException(status_code=400, detail="No files provided")

    payload = [
        {
            "file_name": upload.filename or "upload",
            "content_type": upload.content_type,
            "data": await upload.read(),
        }
        for upload in files
    ]
    return await services.upload_service.upload(
        event_id, payload, uploaded_by=event.get("created_by")
    )


def create_app(
    services: Optional[PipelineServices] = None, config: Optional[PipelineConfig] = None
) -> FastAPI:
    """
    Build the application.

    Injected ``services`` are used as-is and left open on shutdown; otherwise
    services are created from ``config`` (or the environment) at startup and
    closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            yield
            return
        app.state.services = PipelineFactory.create_services(config)
        try:
            yield
        finally:
            await app.state.services.aclose()

    app = FastAPI(title="Event Media Pipeline", version="0.1.0", lifespan=lifespan)
    if services is not None:
        app.state.services = services
    app.include_router(router)
    return app
