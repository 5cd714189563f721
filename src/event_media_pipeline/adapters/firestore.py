"""Firestore-backed upload repository."""

from typing import Any, Dict, List, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..core.error_handling import with_error_handling
from ..core.exceptions import PersistenceError
from ..core.models import UploadRecord, WorkItem


class FirestoreUploadRepository:
    """Reads events and reads/writes uploads in Firestore."""

    def __init__(
        self,
        client: firestore.AsyncClient,
        events_collection: str = "events",
        uploads_collection: str = "uploads",
    ):
        self._client = client
        self._events = events_collection
        self._uploads = uploads_collection

    @with_error_handling(PersistenceError)
    async def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        snapshot = await self._client.collection(self._events).document(event_id).get()
        if not snapshot.exists:
            return None
        return {"id": snapshot.id, **(snapshot.to_dict() or {})}

    @with_error_handling(PersistenceError)
    async def list_uploads(self, event_id: str) -> List[WorkItem]:
        query = self._client.collection(self._uploads).where(
            filter=FieldFilter("event_id", "==", event_id)
        )
        return [
            WorkItem.from_record(snapshot.id, snapshot.to_dict() or {})
            async for snapshot in query.stream()
        ]

    @with_error_handling(PersistenceError)
    async def update_upload(self, upload_id: str, fields: Dict[str, Any]) -> None:
        await self._client.collection(self._uploads).document(upload_id).update(fields)

    @with_error_handling(PersistenceError)
    async def create_upload(self, record: UploadRecord) -> str:
        _, reference = await self._client.collection(self._uploads).add(record.model_dump())
        return reference.id
