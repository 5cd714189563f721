"""Unit tests for service implementations."""

import asyncio

import pytest

from event_media_pipeline.core.exceptions import (
    AlbumAccessError,
    FetchError,
    OversizeError,
    PersistenceError,
    ScopeNotFoundError,
)
from event_media_pipeline.core.models import AlbumMedia, BatchResult, FetchedMedia, PipelineConfig
from event_media_pipeline.core.services import (
    AlbumImportJob,
    DirectUploadService,
    OutcomeRecorder,
    TaggingJob,
    require_event,
)
from event_media_pipeline.testing.fakes import (
    FakeAlbumSource,
    FakeFetcher,
    FakeLogger,
    FakeMediaStore,
    InMemoryUploadRepository,
    ScriptedTaggingBackend,
    create_test_image,
    setup_test_event,
)

ALBUM_URL = "https://photos.app.goo.gl/abc123"


def album_media(count):
    return [
        AlbumMedia(
            uid=f"uid{i}",
            url=f"https://lh3.googleusercontent.com/img{i}",
            width=640,
            height=480,
        )
        for i in range(count)
    ]


def make_import_job(repository, album_source, fetcher=None, store=None, uploaded_by="owner-1"):
    return AlbumImportJob(
        "evt-1",
        ALBUM_URL,
        album_source,
        fetcher or FakeFetcher(),
        store or FakeMediaStore(),
        repository,
        FakeLogger(),
        uploaded_by=uploaded_by,
    )


class TestOutcomeRecorder:
    """Tests for OutcomeRecorder."""

    def test_record_tags(self):
        """Test tags are written with the tagged status."""
        repository = InMemoryUploadRepository()
        upload_id = repository.add_upload(event_id="evt-1", ai_tag_error="old")
        recorder = OutcomeRecorder(repository)

        asyncio.run(recorder.record_tags(upload_id, ["cake", "people"]))

        record = repository.uploads[upload_id]
        assert record["ai_tags"] == ["cake", "people"]
        assert record["ai_tag_status"] == "tagged"
        assert record["ai_tag_error"] is None

    def test_record_tags_is_idempotent(self):
        """Test recording the same outcome twice leaves the same state."""
        repository = InMemoryUploadRepository()
        upload_id = repository.add_upload(event_id="evt-1")
        recorder = OutcomeRecorder(repository)

        asyncio.run(recorder.record_tags(upload_id, ["cake"], demo=True))
        first = dict(repository.uploads[upload_id])
        asyncio.run(recorder.record_tags(upload_id, ["cake"], demo=True))

        assert repository.uploads[upload_id] == first
        assert first["ai_tag_status"] == "demo"

    def test_record_skip_and_failure(self):
        """Test skip and failure statuses carry the reason."""
        repository = InMemoryUploadRepository()
        skipped = repository.add_upload(event_id="evt-1")
        failed = repository.add_upload(event_id="evt-1")
        recorder = OutcomeRecorder(repository)

        asyncio.run(recorder.record_skip(skipped, "too big"))
        asyncio.run(recorder.record_failure(failed, "HTTP 500"))

        assert repository.uploads[skipped]["ai_tag_status"] == "skipped"
        assert repository.uploads[skipped]["ai_tag_error"] == "too big"
        assert repository.uploads[failed]["ai_tag_status"] == "failed"
        assert "ai_tags" not in repository.uploads[failed]

    def test_write_failure_raises_persistence_error(self):
        """Test repository failures surface as PersistenceError."""
        repository = InMemoryUploadRepository()
        upload_id = repository.add_upload(event_id="evt-1")
        repository.set_failure_mode(True, "write rejected")

        with pytest.raises(PersistenceError, match="write rejected"):
            asyncio.run(OutcomeRecorder(repository).record_tags(upload_id, ["cake"]))


class TestRequireEvent:
    """Tests for require_event."""

    def test_existing_event(self):
        """Test an existing event is returned with its id."""
        repository = InMemoryUploadRepository()
        repository.add_event("evt-1", created_by="owner-1")
        event = asyncio.run(require_event(repository, "evt-1"))
        assert event == {"id": "evt-1", "created_by": "owner-1"}

    def test_missing_event(self):
        """Test a missing event raises ScopeNotFoundError."""
        with pytest.raises(ScopeNotFoundError, match="Event nope not found"):
            asyncio.run(require_event(InMemoryUploadRepository(), "nope"))

    def test_unreachable_repository(self):
        """Test lookup failures raise PersistenceError."""
        repository = InMemoryUploadRepository()
        repository.set_failure_mode(True, "connection refused")
        with pytest.raises(PersistenceError):
            asyncio.run(require_event(repository, "evt-1"))


class TestTaggingJob:
    """Tests for TaggingJob enumerate, process and summarize."""

    def make_job(self, repository, backend=None, fetcher=None):
        return TaggingJob(
            "evt-1",
            repository,
            OutcomeRecorder(repository),
            fetcher or FakeFetcher(),
            backend or ScriptedTaggingBackend(),
            PipelineConfig(max_tags=3),
            FakeLogger(),
        )

    def test_enumerate_selects_untagged(self):
        """Test tagged and skipped uploads are left out."""
        repository = InMemoryUploadRepository()
        ids = setup_test_event(repository, photos=2, tagged=2)
        repository.add_upload(event_id="evt-1", file_url="x", ai_tag_status="skipped")
        repository.add_upload(event_id="other", file_url="y")
        notes = []

        items = asyncio.run(self.make_job(repository).enumerate(notes.append))

        assert [item.item_id for item in items] == ids[:2]
        assert notes == ["Looking for untagged uploads..."]

    def test_process_truncates_and_normalizes(self):
        """Test backend output is normalized to the configured ceiling."""
        repository = InMemoryUploadRepository()
        (upload_id,) = setup_test_event(repository, photos=1)
        backend = ScriptedTaggingBackend(script=[["A", "b", "B", "c", "d", "e"]])
        job = self.make_job(repository, backend=backend)
        (item,) = asyncio.run(job.enumerate(lambda message: None))

        outcome = asyncio.run(job.process(item))

        assert outcome.status == "succeeded"
        assert outcome.tags == ["a", "b", "c"]
        assert outcome.file_name == "photo0.jpg"
        assert repository.uploads[upload_id]["ai_tags"] == ["a", "b", "c"]

    def test_process_passes_fetched_bytes_to_backend(self):
        """Test the backend receives the fetched media and its type."""
        repository = InMemoryUploadRepository()
        (upload_id,) = setup_test_event(repository, photos=1)
        url = repository.uploads[upload_id]["file_url"]
        data = create_test_image(30, 30, format="PNG")
        fetcher = FakeFetcher({url: FetchedMedia(url=url, data=data, mime_type="image/png")})
        backend = ScriptedTaggingBackend()
        job = self.make_job(repository, backend=backend, fetcher=fetcher)
        (item,) = asyncio.run(job.enumerate(lambda message: None))

        asyncio.run(job.process(item))

        assert fetcher.calls == [url]
        assert backend.calls == [{"size": len(data), "mime_type": "image/png"}]

    def test_record_failure_is_reported_as_failed(self):
        """Test a failed tag write makes the item fail."""
        repository = InMemoryUploadRepository()
        setup_test_event(repository, photos=1)
        job = self.make_job(repository)
        (item,) = asyncio.run(job.enumerate(lambda message: None))
        repository.set_failure_mode(True, "write rejected", operations={"update_upload"})

        outcome = asyncio.run(job.process(item))

        assert outcome.status == "failed"
        assert "write rejected" in outcome.error

    def test_failure_record_is_best_effort(self):
        """Test a fetch failure is still reported when recording it fails."""
        repository = InMemoryUploadRepository()
        (upload_id,) = setup_test_event(repository, photos=1)
        url = repository.uploads[upload_id]["file_url"]
        job = self.make_job(repository, fetcher=FakeFetcher({url: FetchError("HTTP 403")}))
        (item,) = asyncio.run(job.enumerate(lambda message: None))
        repository.set_failure_mode(True, operations={"update_upload"})

        outcome = asyncio.run(job.process(item))

        assert outcome.status == "failed"
        assert outcome.error == "HTTP 403"

    def test_unrecorded_skip_is_reported_as_failed(self):
        """Test an oversize item whose skip cannot be written counts as failed."""
        repository = InMemoryUploadRepository()
        (upload_id,) = setup_test_event(repository, photos=1)
        url = repository.uploads[upload_id]["file_url"]
        job = self.make_job(repository, fetcher=FakeFetcher({url: OversizeError(url, 10, 50)}))
        (item,) = asyncio.run(job.enumerate(lambda message: None))
        repository.set_failure_mode(True, "write rejected", operations={"update_upload"})

        outcome = asyncio.run(job.process(item))

        assert outcome.status == "failed"
        assert outcome.error == "write rejected"
        assert "ai_tag_status" not in repository.uploads[upload_id]

    def test_unexpected_classify_error_is_recorded(self):
        """Test errors outside the pipeline hierarchy are still recorded as failures."""
        repository = InMemoryUploadRepository()
        (upload_id,) = setup_test_event(repository, photos=1)
        backend = ScriptedTaggingBackend(script=[OSError("cannot identify image file")])
        job = self.make_job(repository, backend=backend)
        (item,) = asyncio.run(job.enumerate(lambda message: None))

        outcome = asyncio.run(job.process(item))

        assert outcome.status == "failed"
        assert repository.uploads[upload_id]["ai_tag_status"] == "failed"
        assert repository.uploads[upload_id]["ai_tag_error"] == "cannot identify image file"

    def test_summarize(self):
        """Test the real and demo summaries."""
        job = self.make_job(InMemoryUploadRepository())
        result = BatchResult(attempted=4, succeeded=2, skipped=1, failed=1)
        assert job.summarize(result) == "Tagged 2 of 4 uploads (1 skipped, 1 failed)."
        demo = result.model_copy(update={"demo": True})
        assert job.summarize(demo).startswith("Demo tags applied to 2 of 4 uploads (1 skipped, 1 failed).")


class TestAlbumImportJob:
    """Tests for AlbumImportJob."""

    def test_enumerate_resolves_then_lists(self):
        """Test the album link is resolved before listing."""
        source = FakeAlbumSource(
            album_media(2), resolved_url="https://photos.google.com/share/xyz?key=k"
        )
        notes = []

        items = asyncio.run(make_import_job(InMemoryUploadRepository(), source).enumerate(notes.append))

        assert len(items) == 2
        assert source.resolved == [ALBUM_URL]
        assert notes == ["Resolving album link...", "Extracting images from album..."]

    def test_enumerate_propagates_album_errors(self):
        """Test album access errors abort enumeration."""
        source = FakeAlbumSource(error=AlbumAccessError("Could not access the album (404)"))
        with pytest.raises(AlbumAccessError):
            asyncio.run(make_import_job(InMemoryUploadRepository(), source).enumerate(lambda m: None))

    def test_process_stores_and_records(self):
        """Test an imported item is stored and gets an upload record."""
        repository = InMemoryUploadRepository()
        store = FakeMediaStore()
        fetcher = FakeFetcher()
        (media,) = album_media(1)
        job = make_import_job(repository, FakeAlbumSource(), fetcher=fetcher, store=store)

        outcome = asyncio.run(job.process(media))

        assert outcome.status == "succeeded"
        assert fetcher.calls == [media.full_res_url]
        (key,) = store.objects
        assert key.startswith("events/evt-1/") and key.endswith(".jpg")
        (record,) = repository.uploads_for("evt-1")
        assert record["file_url"] == f"https://storage.test/{key}"
        assert record["file_type"] == "photo"
        assert record["uploaded_by"] == "owner-1"
        assert record["width"] == 640
        assert record["metadata"]["source"] == "google-photos-import"
        assert record["metadata"]["original_uid"] == "uid0"

    def test_process_oversize_is_skipped(self):
        """Test oversize album media is skipped and nothing is stored."""
        (media,) = album_media(1)
        fetcher = FakeFetcher({media.full_res_url: OversizeError(media.full_res_url, 10, 99)})
        store = FakeMediaStore()
        job = make_import_job(InMemoryUploadRepository(), FakeAlbumSource(), fetcher=fetcher, store=store)

        outcome = asyncio.run(job.process(media))

        assert outcome.status == "skipped"
        assert store.objects == {}

    def test_process_storage_failure(self):
        """Test storage failures mark the item failed."""
        store = FakeMediaStore()
        store.set_failure_mode(True, "bucket unavailable")
        repository = InMemoryUploadRepository()
        job = make_import_job(repository, FakeAlbumSource(), store=store)

        outcome = asyncio.run(job.process(album_media(1)[0]))

        assert outcome.status == "failed"
        assert outcome.error == "bucket unavailable"
        assert repository.uploads == {}


class TestDirectUploadService:
    """Tests for DirectUploadService."""

    def test_upload_mixed_files(self):
        """Test per-file results for good and empty files."""
        repository = InMemoryUploadRepository()
        store = FakeMediaStore()
        service = DirectUploadService(store, repository, FakeLogger())
        files = [
            {"file_name": "a.jpg", "content_type": "image/jpeg", "data": create_test_image(40, 30)},
            {"file_name": "empty.jpg", "content_type": "image/jpeg", "data": b""},
            {"file_name": "clip.mp4", "content_type": "video/mp4", "data": b"\x00\x00\x00\x18ftyp"},
        ]

        result = asyncio.run(service.upload("evt-1", files, uploaded_by="owner-1"))

        assert result["imported"] == 2
        assert result["failed"] == 1
        assert result["total"] == 3
        assert result["results"][1] == {"fileName": "empty.jpg", "success": False, "error": "Empty file"}
        records = repository.uploads_for("evt-1")
        photo = next(r for r in records if r["file_type"] == "photo")
        video = next(r for r in records if r["file_type"] == "video")
        assert (photo["width"], photo["height"]) == (40, 30)
        assert photo["metadata"]["original_name"] == "a.jpg"
        assert video["width"] is None
        assert any(key.endswith(".mp4") for key in store.objects)

    def test_upload_storage_failure(self):
        """Test storage failures are reported per file."""
        store = FakeMediaStore()
        store.set_failure_mode(True)
        service = DirectUploadService(store, InMemoryUploadRepository(), FakeLogger())

        result = asyncio.run(
            service.upload("evt-1", [{"file_name": "a.jpg", "content_type": "image/jpeg", "data": b"x"}])
        )

        assert result["imported"] == 0
        assert result["results"][0]["success"] is False
        assert result["results"][0]["error"] == "Simulated storage failure"
