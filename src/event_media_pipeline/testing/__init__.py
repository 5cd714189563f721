"""Testing utilities and fakes for the event media pipeline."""

from .fakes import (
    FakeAlbumSource,
    FakeFetcher,
    FakeLogger,
    FakeMediaStore,
    InMemoryUploadRepository,
    ScriptedTaggingBackend,
    create_test_image,
    setup_test_event,
)

__all__ = [
    "InMemoryUploadRepository",
    "FakeMediaStore",
    "FakeFetcher",
    "ScriptedTaggingBackend",
    "FakeAlbumSource",
    "FakeLogger",
    "create_test_image",
    "setup_test_event",
]
