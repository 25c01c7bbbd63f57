"""Shared fixtures and in-memory fakes for the publisher tests."""

from pathlib import Path
from typing import Any

import pytest

from draft_publisher.core.config import Settings
from draft_publisher.core.exceptions import ExtractionUnavailableError
from draft_publisher.core.schemas import (
    DocumentUpload,
    ImageUpload,
    ResourceKind,
    ResourceReference,
    VideoUpload,
)
from draft_publisher.providers import StorageProvider
from draft_publisher.providers.downloader import DownloadedFile
from draft_publisher.services import (
    DocumentAssembler,
    DraftStore,
    FrontmatterMetadataSource,
    MetadataExtractor,
    Publisher,
    PublishedStore,
    ResourceLibrary,
    UploadOrchestrator,
    VocabularyRegistry,
)
from draft_publisher.services.publisher import AutoCheckpoint


class FakeProvider(StorageProvider):
    """Records every upload and hands out sequential ids."""

    def __init__(self, fail_urls: set[str] | None = None):
        self.fail_urls = fail_urls or set()
        self.calls: list[tuple[str, str]] = []

    def _check(self, kind: str, target: str) -> int:
        self.calls.append((kind, target))
        if target in self.fail_urls:
            raise ConnectionError(f"cannot reach {target}")
        return len(self.calls)

    async def upload_image_from_url(self, source_url: str, meta: dict[str, Any]) -> ImageUpload:
        n = self._check("image", source_url)
        return ImageUpload(image_id=f"img-{n}", variants={"public": f"https://images.test/img-{n}/public"})

    async def upload_video_from_url(self, source_url: str, meta: dict[str, Any]) -> VideoUpload:
        n = self._check("video", source_url)
        return VideoUpload(
            video_id=f"vid-{n}",
            embed_url=f"https://stream.test/vid-{n}/iframe",
            thumbnail_url=f"https://stream.test/vid-{n}/thumb.jpg",
        )

    async def upload_document(self, path: Path, meta: dict[str, Any]) -> DocumentUpload:
        n = self._check("document", meta.get("file_name", path.name))
        return DocumentUpload(
            r2_key=f"documents/{n}-{path.name}",
            public_url=f"https://files.test/documents/{n}-{path.name}",
            content_type=meta.get("content_type", "application/pdf"),
            file_name=path.name,
        )

    async def close(self) -> None:
        pass


class FakeDownloader:
    """Writes a small file instead of fetching the URL."""

    def __init__(self, fail_urls: set[str] | None = None):
        self.fail_urls = fail_urls or set()
        self.downloaded: list[str] = []

    async def download(self, url: str, dest_dir: Path) -> DownloadedFile:
        if url in self.fail_urls:
            raise ConnectionError(f"404 for {url}")
        dest_dir.mkdir(parents=True, exist_ok=True)
        path = dest_dir / f"{len(self.downloaded)}-{url.rsplit('/', 1)[-1]}"
        path.write_bytes(b"%PDF-1.4 test")
        self.downloaded.append(url)
        return DownloadedFile(path=path, file_name=path.name, content_type="application/pdf")

    async def close(self) -> None:
        pass


def valid_params(kind: ResourceKind) -> dict[str, Any]:
    return {
        ResourceKind.IMAGE: {"alt": "Officers standing near a patrol car", "caption": "Scene on Main Street"},
        ResourceKind.VIDEO: {"caption": "Body camera footage of the arrest"},
        ResourceKind.DOCUMENT: {"title": "Autopsy report", "description": "County coroner findings."},
        ResourceKind.LINK: {"title": "News coverage", "description": "Local reporting.", "icon": "news"},
    }[kind]


class FakeExtractor(MetadataExtractor):
    """Returns valid items for every reference unless told otherwise."""

    def __init__(self, response: Any = None, unavailable: bool = False):
        self.response = response
        self.unavailable = unavailable
        self.batches: list[list[ResourceReference]] = []

    async def extract(self, references: list[ResourceReference]) -> Any:
        self.batches.append(references)
        if self.unavailable:
            raise ExtractionUnavailableError("service down")
        if self.response is not None:
            return self.response
        return [
            {
                "url": ref.source_url,
                "type": ref.kind.value,
                "params": valid_params(ref.kind),
                "confidence": 0.9,
            }
            for ref in references
        ]


CASE_HEADER = """---
title: Jane Doe
description: Jane Doe was shot during a traffic stop.
incident_date: 2024-03-02
city: Springfield
county: Lane
agencies:
  - springfield pd
force_type:
  - shooting
threat_level: no threat
---
"""


def write_draft(root: Path, folder: str, name: str, body: str, header: str = CASE_HEADER) -> Path:
    path = root / folder / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(header + body, encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path: Path) -> Settings:
    return Settings(project_root=tmp_path, enable_llm_extraction=False, max_concurrent_uploads=2)


@pytest.fixture
def library(tmp_path: Path) -> ResourceLibrary:
    return ResourceLibrary(tmp_path / "data" / "media-library.json")


@pytest.fixture
def vocabulary(tmp_path: Path) -> VocabularyRegistry:
    registry = VocabularyRegistry(tmp_path / "data" / "metadata-registry.json")
    registry.add_canonical("Springfield Police Department", "agencies", aliases=["Springfield PD"])
    registry.add_canonical("Lane", "counties")
    return registry


@pytest.fixture
def draft_store(tmp_path: Path) -> DraftStore:
    return DraftStore(tmp_path / "drafts")


@pytest.fixture
def published_store(tmp_path: Path) -> PublishedStore:
    return PublishedStore(tmp_path / "src" / "content")


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def uploads(library, provider, downloader, tmp_path) -> UploadOrchestrator:
    return UploadOrchestrator(library, provider, downloader, tmp_path / ".temp-uploads")


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def checkpoint() -> AutoCheckpoint:
    return AutoCheckpoint(True)


@pytest.fixture
def publisher(
    draft_store,
    published_store,
    library,
    vocabulary,
    uploads,
    extractor,
    checkpoint,
    config,
) -> Publisher:
    return Publisher(
        drafts=draft_store,
        published=published_store,
        library=library,
        vocabulary=vocabulary,
        uploads=uploads,
        extractor=extractor,
        article_source=FrontmatterMetadataSource(),
        assembler=DocumentAssembler(),
        checkpoint=checkpoint,
        config=config,
    )
