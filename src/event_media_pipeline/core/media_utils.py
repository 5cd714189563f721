"""Media and tag utilities for the event media pipeline."""

import io
import mimetypes
import re
import secrets
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from PIL import Image, UnidentifiedImageError

UNTAGGED_SENTINEL = "untagged"

# Google Photos marks motion photos / videos with an =m18 or =m37 size suffix.
_MOTION_SUFFIX = re.compile(r"=m(18|37)")

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "video/webm": "webm",
}


def mime_type_from_header(content_type: Optional[str]) -> Optional[str]:
    """
    Return the media type from a Content-Type header value.

    Parameters are stripped. Anything that is not ``image/*`` or ``video/*``
    yields None so callers can fall back to URL heuristics.
    """
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime.startswith(("image/", "video/")):
        return mime
    return None


def mime_type_for_url(url: str) -> str:
    """Best-effort media type for a URL, defaulting to JPEG."""
    if _MOTION_SUFFIX.search(url):
        return "video/mp4"
    guessed, _ = mimetypes.guess_type(urlsplit(url).path)
    if guessed and guessed.startswith(("image/", "video/")):
        return guessed
    return "image/jpeg"


def media_kind_for_mime(mime_type: str) -> str:
    return "video" if mime_type.startswith("video/") else "photo"


def extension_for_mime(mime_type: str) -> str:
    if mime_type in _EXTENSIONS:
        return _EXTENSIONS[mime_type]
    return "mp4" if mime_type.startswith("video/") else "jpg"


def new_file_id() -> str:
    return secrets.token_urlsafe(15)


def calculate_storage_key(event_id: str, file_id: str, mime_type: str) -> str:
    """
    Calculate the object storage key for an event's media file.

    Args:
        event_id: Owning event
        file_id: Unique file identifier
        mime_type: Media type, used for the file extension

    Returns:
        Key of the form ``events/<event_id>/<file_id>.<ext>``
    """
    return f"events/{event_id}/{file_id}.{extension_for_mime(mime_type)}"


def normalize_tags(raw: Iterable[Any], max_tags: int = 10, max_length: int = 40) -> List[str]:
    """
    Normalize raw classifier output into a tag list.

    Tags are lowercased and trimmed; empty, non-string and over-length entries
    are dropped, duplicates keep their first position, and the result is
    truncated to ``max_tags``.
    """
    tags: List[str] = []
    for value in raw:
        if not isinstance(value, str):
            continue
        tag = " ".join(value.strip().lower().split())
        if not tag or len(tag) > max_length or tag in tags:
            continue
        tags.append(tag)
        if len(tags) >= max_tags:
            break
    return tags


def ensure_tags(tags: List[str]) -> List[str]:
    """Substitute the sentinel tag when nothing usable is left."""
    return tags if tags else [UNTAGGED_SENTINEL]


def prepare_image_for_tagging(
    data: bytes, mime_type: str, max_dimension: int = 1280
) -> Tuple[bytes, str]:
    """
    Downscale an image before sending it to a classifier.

    Images already within ``max_dimension`` and formats Pillow cannot read are
    returned unchanged.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError):
        return data, mime_type

    if max(image.size) <= max_dimension:
        return data, mime_type

    image.thumbnail((max_dimension, max_dimension))
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")

    output = io.BytesIO()
    image.save(output, format="JPEG", quality=85)
    return output.getvalue(), "image/jpeg"


def extract_image_info(data: bytes) -> Dict[str, Any]:
    """
    Read basic image information from raw bytes.

    Returns:
        Dictionary with ``width``, ``height`` and ``format``; empty when the
        bytes are not a readable image (videos, corrupt files).
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            return {
                "width": image.width,
                "height": image.height,
                "format": image.format or "unknown",
            }
    except (UnidentifiedImageError, OSError):
        return {}
