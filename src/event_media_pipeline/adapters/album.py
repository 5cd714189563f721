"""Shared Google Photos album scraper; no API key required."""

import hashlib
import re
from typing import List
from urllib.parse import urlsplit

import httpx

from ..core.error_handling import with_error_handling
from ..core.exceptions import AlbumAccessError
from ..core.models import DEFAULT_USER_AGENT, AlbumMedia

SHORT_LINK_HOST = "photos.app.goo.gl"
ALBUM_HOSTS = frozenset({SHORT_LINK_HOST, "photos.google.com"})

COMPLETE_LINK_HINT = (
    "Please make sure you copied the COMPLETE share link from Google Photos, "
    "including the ?key= parameter at the end."
)
NOT_FOUND_HINT = f"Could not access the album (404). {COMPLETE_LINK_HINT}"
RESOLVE_HINT = f"Could not resolve the album link. {COMPLETE_LINK_HINT}"

# Album pages embed entries as ["<uid>",["<url>",<width>,<height>,...],<updated>,...
_ENTRY = re.compile(
    r'\["([\w-]{10,})",\["(https://lh3\.googleusercontent\.com/[^"\s]+)",(\d+),(\d+)'
    r'(?:[^\]]*\],(\d{10,13}))?'
)
_BARE_URL = re.compile(r'\["(https://lh3\.googleusercontent\.com/[^"\s]+)",(\d+),(\d+)')


def _is_profile_photo(url: str) -> bool:
    path = urlsplit(url).path
    return path.startswith(("/a/", "/a-/"))


def parse_album_page(html: str) -> List[AlbumMedia]:
    """
    Extract media entries from a shared album page.

    Entries are de-duplicated by URL; profile pictures and zero-sized entries
    are ignored.
    """
    media: List[AlbumMedia] = []
    seen = set()

    for match in _ENTRY.finditer(html):
        uid, url, width, height, updated = match.groups()
        if url in seen or _is_profile_photo(url) or width == "0" or height == "0":
            continue
        seen.add(url)
        media.append(
            AlbumMedia(
                uid=uid,
                url=url,
                width=int(width),
                height=int(height),
                image_update_date=int(updated) if updated else None,
            )
        )

    if media:
        return media

    for match in _BARE_URL.finditer(html):
        url, width, height = match.groups()
        if url in seen or _is_profile_photo(url) or width == "0" or height == "0":
            continue
        seen.add(url)
        uid = hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]
        media.append(AlbumMedia(uid=uid, url=url, width=int(width), height=int(height)))
    return media


class GooglePhotosAlbumSource:
    """Lists the media of a public shared Google Photos album."""

    def __init__(self, client: httpx.AsyncClient, user_agent: str = DEFAULT_USER_AGENT):
        self._client = client
        self._headers = {"User-Agent": user_agent}

    def is_valid_album_url(self, url: str) -> bool:
        try:
            parts = urlsplit(url)
        except ValueError:
            return False
        return parts.scheme in ("http", "https") and parts.hostname in ALBUM_HOSTS

    @with_error_handling(AlbumAccessError)
    async def resolve(self, url: str) -> str:
        """Follow short-link redirects to the full album URL."""
        if urlsplit(url).hostname != SHORT_LINK_HOST:
            return url
        try:
            response = await self._client.head(url, headers=self._headers, follow_redirects=True)
        except httpx.HTTPError as e:
            raise AlbumAccessError(RESOLVE_HINT) from e
        if not response.is_success:
            raise AlbumAccessError(RESOLVE_HINT)
        return str(response.url)

    @with_error_handling(AlbumAccessError)
    async def list_media(self, url: str) -> List[AlbumMedia]:
        response = await self._client.get(url, headers=self._headers, follow_redirects=True)
        if response.status_code == 404:
            raise AlbumAccessError(NOT_FOUND_HINT)
        if not response.is_success:
            raise AlbumAccessError(f"Failed to extract images: HTTP {response.status_code}")
        return parse_album_page(response.text)
