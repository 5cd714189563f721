"""Adapters to external systems: HTTP fetch, classifiers, album pages, storage and Firestore."""

from .album import GooglePhotosAlbumSource, parse_album_page
from .fetcher import RemoteMediaFetcher
from .firestore import FirestoreUploadRepository
from .storage import S3MediaStore
from .tagging import (
    DemoTaggingBackend,
    GeminiTaggingBackend,
    VisionTaggingBackend,
    parse_tag_response,
)

__all__ = [
    "RemoteMediaFetcher",
    "GeminiTaggingBackend",
    "VisionTaggingBackend",
    "DemoTaggingBackend",
    "parse_tag_response",
    "GooglePhotosAlbumSource",
    "parse_album_page",
    "S3MediaStore",
    "FirestoreUploadRepository",
]
