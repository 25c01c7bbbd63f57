"""End-to-end tests for the publishing pipeline."""

import pytest

from conftest import FakeProvider, write_draft
from draft_publisher.core.exceptions import (
    DraftInputError,
    ExtractionValidationError,
    PipelineError,
    PublishConflictError,
    UploadError,
    VocabularyError,
)
from draft_publisher.core.schemas import ImageUpload, PipelinePhase, ResourceKind
from draft_publisher.services import UploadOrchestrator
from draft_publisher.services.documents import split_frontmatter
from draft_publisher.services.publisher import AutoCheckpoint


IMAGE_URL = "https://example.com/photos/scene.jpg"
PDF_URL = "https://example.com/files/autopsy.pdf"


class TestPublisherScenarios:
    """Scenarios for Publisher.publish."""

    @pytest.mark.asyncio
    async def test_new_image_published(self, publisher, draft_store, library, provider):
        """Test a bare image URL with no library entry is uploaded once and referenced."""
        path = write_draft(draft_store.root, "cases", "jane-doe.md", f"Jane was stopped.\n\n{IMAGE_URL}\n")

        result = await publisher.publish(path)

        entries = library.entries(ResourceKind.IMAGE)
        assert len(entries) == 1
        assert provider.calls == [("image", IMAGE_URL)]

        header, body = split_frontmatter(result.document_path.read_text())
        assert header["images"][0]["asset_id"] == entries[0].id
        assert header["featured_image"]["asset_id"] == entries[0].id
        assert "<CloudflareImage" in body

        assert not path.exists()
        assert result.archived_draft_path == draft_store.root / "published" / "cases" / "jane-doe.md"
        assert result.archived_draft_path.exists()
        assert (result.new_uploads, result.reused) == (1, 0)

    @pytest.mark.asyncio
    async def test_library_hit_reused(self, publisher, draft_store, library, provider):
        """Test a URL already in the library adds no entries and reuses the id."""
        existing = library.register_image(IMAGE_URL, ImageUpload(image_id="cf-existing"))
        path = write_draft(draft_store.root, "cases", "jane-doe.md", f"Photo: {IMAGE_URL}")

        result = await publisher.publish(path)

        assert len(library.entries()) == 1
        assert provider.calls == []
        header, _ = split_frontmatter(result.document_path.read_text())
        assert header["images"][0]["asset_id"] == existing.id
        assert header["images"][0]["image_id"] == "cf-existing"
        assert (result.new_uploads, result.reused) == (0, 1)

    @pytest.mark.asyncio
    async def test_invalid_extraction_aborts_before_upload(
        self, publisher, draft_store, library, provider, extractor
    ):
        """Test a 12-word document title aborts the run with no upload and no library change."""
        path = write_draft(draft_store.root, "cases", "jane-doe.md", f"Report {PDF_URL} and {IMAGE_URL}")
        extractor.response = [
            {
                "url": PDF_URL,
                "type": "document",
                "params": {
                    "title": "The complete and final county coroner autopsy report for the deceased victim",
                    "description": "Findings.",
                },
                "confidence": 0.9,
            },
            {
                "url": IMAGE_URL,
                "type": "image",
                "params": {"alt": "Patrol car"},
                "confidence": 0.9,
            },
        ]
        before = library.path.read_text() if library.path.exists() else None

        with pytest.raises(PipelineError) as exc_info:
            await publisher.publish(path)

        assert exc_info.value.phase is PipelinePhase.EXTRACT
        assert isinstance(exc_info.value.cause, ExtractionValidationError)
        assert "title has 12 words (max 8)" in str(exc_info.value)
        assert provider.calls == []
        assert (library.path.read_text() if library.path.exists() else None) == before
        assert path.exists()

    @pytest.mark.asyncio
    async def test_extraction_outage_continues_with_empty_metadata(
        self, publisher, draft_store, extractor
    ):
        """Test the run completes with blank params when extraction is down."""
        extractor.unavailable = True
        path = write_draft(draft_store.root, "cases", "jane-doe.md", f"Photo {IMAGE_URL}")

        result = await publisher.publish(path)

        header, _ = split_frontmatter(result.document_path.read_text())
        assert header["images"][0]["alt"] == ""

    @pytest.mark.asyncio
    async def test_upload_failure_writes_nothing(
        self, publisher, draft_store, published_store, library, tmp_path
    ):
        """Test a failed upload leaves the draft in place and writes no document."""
        publisher.uploads = UploadOrchestrator(
            library,
            FakeProvider(fail_urls={IMAGE_URL}),
            temp_dir=tmp_path / "tmp",
        )
        path = write_draft(draft_store.root, "cases", "jane-doe.md", f"Photo {IMAGE_URL}")

        with pytest.raises(PipelineError) as exc_info:
            await publisher.publish(path)

        assert exc_info.value.phase is PipelinePhase.UPLOAD
        assert isinstance(exc_info.value.cause, UploadError)
        assert path.exists()
        assert list(published_store.iter_documents()) == []

    @pytest.mark.asyncio
    async def test_input_error_before_network(self, publisher, draft_store, extractor):
        """Test a draft missing required metadata fails in load."""
        path = write_draft(
            draft_store.root,
            "cases",
            "x.md",
            f"Photo {IMAGE_URL}",
            header="---\ntitle: Only a title\n---\n",
        )

        with pytest.raises(PipelineError) as exc_info:
            await publisher.publish(path)

        assert exc_info.value.phase is PipelinePhase.LOAD
        assert isinstance(exc_info.value.cause, DraftInputError)
        assert extractor.batches == []

    @pytest.mark.asyncio
    async def test_overwrite_declined(self, publisher, draft_store, published_store):
        """Test a declined overwrite aborts with no state change."""
        target = published_store.root / "cases" / "jane-doe.mdx"
        target.parent.mkdir(parents=True)
        target.write_text("original")
        publisher.checkpoint = AutoCheckpoint(False)
        path = write_draft(draft_store.root, "cases", "jane-doe.md", "No media.")

        with pytest.raises(PipelineError) as exc_info:
            await publisher.publish(path)

        assert isinstance(exc_info.value.cause, PublishConflictError)
        assert target.read_text() == "original"
        assert path.exists()

    @pytest.mark.asyncio
    async def test_overwrite_confirmed(self, publisher, draft_store, published_store):
        """Test a confirmed overwrite replaces the document."""
        target = published_store.root / "cases" / "jane-doe.mdx"
        target.parent.mkdir(parents=True)
        target.write_text("original")
        path = write_draft(draft_store.root, "cases", "jane-doe.md", "No media.")

        result = await publisher.publish(path)

        assert result.document_path == target
        assert target.read_text().startswith("---\ntitle: Jane Doe\n")

    @pytest.mark.asyncio
    async def test_metadata_normalized(self, publisher, draft_store):
        """Test constrained fields are written in canonical form."""
        path = write_draft(draft_store.root, "cases", "jane-doe.md", "No media.")

        result = await publisher.publish(path)

        header, _ = split_frontmatter(result.document_path.read_text())
        assert header["agencies"] == ["Springfield Police Department"]
        assert header["force_type"] == ["Shooting"]
        assert header["threat_level"] == "No Threat"
        assert header["incident_date"] == "2024-03-02"

    @pytest.mark.asyncio
    async def test_new_vocabulary_value_rejected(self, publisher, draft_store, vocabulary):
        """Test a declined non-canonical value aborts the run."""
        publisher.checkpoint = AutoCheckpoint(False)
        header = "---\ntitle: A\ndescription: B\ncity: C\ncounty: Unknown County\n---\n"
        path = write_draft(draft_store.root, "cases", "a.md", "Body", header=header)

        with pytest.raises(PipelineError) as exc_info:
            await publisher.publish(path)

        assert exc_info.value.phase is PipelinePhase.ASSEMBLE
        assert isinstance(exc_info.value.cause, VocabularyError)
        assert "Unknown County" not in vocabulary.canonical_values("counties")

    @pytest.mark.asyncio
    async def test_new_vocabulary_value_accepted(self, publisher, draft_store, vocabulary):
        """Test an accepted value is added to the registry on commit."""
        header = "---\ntitle: A\ndescription: B\ncity: C\ncounty: Marion\n---\n"
        path = write_draft(draft_store.root, "cases", "a.md", "Body", header=header)

        await publisher.publish(path)

        assert "Marion" in vocabulary.canonical_values("counties")

    @pytest.mark.asyncio
    async def test_mixed_reuse_and_new_upload(self, publisher, draft_store, library, provider, extractor):
        """Test known URLs are reused while new ones are uploaded in the same run."""
        path = write_draft(draft_store.root, "cases", "jane-doe.md", f"{IMAGE_URL}\n{PDF_URL}")
        library.register_image(IMAGE_URL, ImageUpload(image_id="cf-1"))

        result = await publisher.publish(path)

        assert result.reused == 1
        assert result.new_uploads == 1
        assert [call[0] for call in provider.calls] == ["document"]
        assert len(extractor.batches) == 1
