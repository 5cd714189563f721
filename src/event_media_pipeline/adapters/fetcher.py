"""Remote media fetcher built on httpx."""

from typing import List, Optional

import httpx

from ..core.exceptions import FetchError, OversizeError
from ..core.media_utils import mime_type_for_url, mime_type_from_header
from ..core.models import DEFAULT_USER_AGENT, FetchedMedia


class RemoteMediaFetcher:
    """
    Downloads media bytes with a size ceiling.

    Redirects are followed and every request carries the configured
    User-Agent; some photo CDNs reject non-browser agents.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str = DEFAULT_USER_AGENT,
        max_bytes: int = 10 * 1024 * 1024,
    ):
        self._client = client
        self._user_agent = user_agent
        self._max_bytes = max_bytes

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    async def fetch(self, url: str) -> FetchedMedia:
        """
        Fetch the media at ``url``.

        Raises:
            OversizeError: If the declared or streamed size exceeds the ceiling.
            FetchError: On a non-2xx status, a transport error or an empty body.
        """
        chunks: List[bytes] = []
        content_type: Optional[str] = None
        try:
            async with self._client.stream(
                "GET",
                url,
                headers={"User-Agent": self._user_agent},
                follow_redirects=True,
            ) as response:
                if not response.is_success:
                    raise FetchError(
                        f"HTTP {response.status_code}", url=url, status_code=response.status_code
                    )

                declared = response.headers.get("content-length", "")
                if declared.isdigit() and int(declared) > self._max_bytes:
                    raise OversizeError(url, self._max_bytes, int(declared))

                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > self._max_bytes:
                        raise OversizeError(url, self._max_bytes)
                    chunks.append(chunk)
                content_type = response.headers.get("content-type")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"Request failed: {e}", url=url) from e

        data = b"".join(chunks)
        if not data:
            raise FetchError("Empty response body", url=url)

        mime_type = mime_type_from_header(content_type) or mime_type_for_url(url)
        return FetchedMedia(url=url, data=data, mime_type=mime_type)
