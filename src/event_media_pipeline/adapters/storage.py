"""S3-compatible object storage for imported media."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import aioboto3

from ..core.error_handling import retry_async, with_error_handling
from ..core.exceptions import StorageError


class S3MediaStore:
    """
    Writes media objects to an S3-compatible bucket.

    ``endpoint_url`` points the client at non-AWS providers (GCS interop,
    MinIO). Public URLs use ``public_base_url`` when given.
    """

    def __init__(
        self,
        session: aioboto3.Session,
        bucket: str,
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        public_read: bool = True,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._session = session
        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._public_base_url = public_base_url
        self._public_read = public_read
        self._put_with_retry = retry_async(
            max_attempts=max_attempts,
            initial_delay=retry_delay,
            retry_on=(StorageError,),
            sleep=sleep,
        )(self._put_once)

    def public_url(self, key: str) -> str:
        if self._public_base_url:
            base = self._public_base_url
        elif self._endpoint_url:
            base = f"{self._endpoint_url.rstrip('/')}/{self._bucket}"
        else:
            base = f"https://{self._bucket}.s3.amazonaws.com"
        return f"{base.rstrip('/')}/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Upload ``data`` under ``key`` and return its public URL."""
        await self._put_with_retry(key, data, content_type)
        return self.public_url(key)

    @with_error_handling(StorageError)
    async def _put_once(self, key: str, data: bytes, content_type: str) -> None:
        extra = {"ACL": "public-read"} if self._public_read else {}
        async with self._session.client("s3", endpoint_url=self._endpoint_url) as s3_client:
            await s3_client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                **extra,
            )
