"""Resource library: the ledger of every fetched and stored asset."""

from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

from draft_publisher.core.config import settings
from draft_publisher.core.logging import get_logger
from draft_publisher.core.schemas import (
    ENTRY_BY_KIND,
    AnyLibraryEntry,
    DocumentEntry,
    DocumentHandles,
    DocumentUpload,
    ImageEntry,
    ImageHandles,
    ImageUpload,
    ResourceKind,
    VideoEntry,
    VideoHandles,
    VideoUpload,
)
from draft_publisher.core.storage import JsonDocumentStore

from .components import render_media

logger = get_logger(__name__)

MEDIA_KINDS = (ResourceKind.VIDEO, ResourceKind.IMAGE, ResourceKind.DOCUMENT)


def empty_library() -> dict[str, Any]:
    return {kind.library_key: {} for kind in MEDIA_KINDS}


class ResourceLibrary:
    """Append-only store of library entries keyed by generated id.

    Entries are looked up by source URL before anything is fetched. This
    class does not reject a second entry for the same URL; the upload
    orchestrator guarantees at-most-once by always looking up first.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or settings.resolve(settings.library_path)
        self.store = JsonDocumentStore(self.path, empty_library)

    @staticmethod
    def _parse(kind: ResourceKind, raw: dict[str, Any]) -> AnyLibraryEntry:
        return ENTRY_BY_KIND[kind].model_validate(raw)

    @staticmethod
    def _collection(data: dict[str, Any], kind: ResourceKind) -> dict[str, Any]:
        return data.setdefault(kind.library_key, {})

    def find_by_source_url(
        self,
        url: str,
        kind: ResourceKind | None = None,
    ) -> AnyLibraryEntry | None:
        """Exact-match lookup on the source URL.

        Args:
            url: Source URL as it appeared in the draft
            kind: Restrict the lookup to one resource kind

        Returns:
            The matching entry or None
        """
        data = self.store.read()
        kinds = [kind] if kind is not None else MEDIA_KINDS
        for candidate in kinds:
            for raw in self._collection(data, candidate).values():
                if raw.get("sourceUrl") == url:
                    return self._parse(candidate, raw)
        return None

    def get(self, entry_id: str) -> AnyLibraryEntry | None:
        """Get an entry by its generated id."""
        data = self.store.read()
        for kind in MEDIA_KINDS:
            raw = self._collection(data, kind).get(entry_id)
            if raw is not None:
                return self._parse(kind, raw)
        return None

    def entries(self, kind: ResourceKind | None = None) -> list[AnyLibraryEntry]:
        """List entries, oldest first."""
        data = self.store.read()
        kinds = [kind] if kind is not None else MEDIA_KINDS
        results = [
            self._parse(candidate, raw)
            for candidate in kinds
            for raw in self._collection(data, candidate).values()
        ]
        results.sort(key=lambda entry: entry.added_at)
        return results

    def search(self, query: str) -> list[AnyLibraryEntry]:
        """Case-insensitive substring search over ids, source URLs and handles."""
        needle = query.lower().strip()
        return [
            entry
            for entry in self.entries()
            if needle in entry.id.lower()
            or needle in entry.source_url.lower()
            or needle in str(entry.cloudflare.model_dump()).lower()
        ]

    def embed_snippet(self, entry_id: str) -> str:
        """Return the MDX component markup for an entry.

        Raises:
            KeyError: if the entry does not exist
        """
        entry = self.get(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        return render_media(entry)

    def _register(
        self,
        kind: ResourceKind,
        source_url: str,
        build: Callable[[str], AnyLibraryEntry],
    ) -> AnyLibraryEntry:
        entry_id = f"{kind.value}-{uuid4()}"
        with self.store.transaction() as data:
            collection = self._collection(data, kind)
            if any(raw.get("sourceUrl") == source_url for raw in collection.values()):
                logger.warning(
                    "library_duplicate_source_url",
                    kind=kind.value,
                    source_url=source_url,
                )
            entry = build(entry_id)
            collection[entry_id] = entry.to_json()

        logger.info("library_entry_registered", entry_id=entry_id, source_url=source_url)
        return entry

    def register_video(self, source_url: str, upload: VideoUpload) -> VideoEntry:
        """Record a video the caller has already stored with the provider."""
        return self._register(
            ResourceKind.VIDEO,
            source_url,
            lambda entry_id: VideoEntry(
                id=entry_id,
                source_url=source_url,
                cloudflare=VideoHandles(
                    video_id=upload.video_id,
                    embed_url=upload.embed_url,
                    stream_url=upload.stream_url,
                    thumbnail_url=upload.thumbnail_url,
                ),
            ),
        )

    def register_image(self, source_url: str, upload: ImageUpload) -> ImageEntry:
        """Record an image the caller has already stored with the provider."""
        return self._register(
            ResourceKind.IMAGE,
            source_url,
            lambda entry_id: ImageEntry(
                id=entry_id,
                source_url=source_url,
                cloudflare=ImageHandles(image_id=upload.image_id, variants=upload.variants),
            ),
        )

    def register_document(self, source_url: str, upload: DocumentUpload) -> DocumentEntry:
        """Record a document the caller has already stored with the provider."""
        return self._register(
            ResourceKind.DOCUMENT,
            source_url,
            lambda entry_id: DocumentEntry(
                id=entry_id,
                source_url=source_url,
                cloudflare=DocumentHandles(
                    r2_key=upload.r2_key,
                    public_url=upload.public_url,
                    content_type=upload.content_type,
                ),
            ),
        )

    def append_derived(self, entry_id: str, **fields: Any) -> AnyLibraryEntry:
        """Add computed provider fields to an existing entry.

        Existing fields are never changed.

        Raises:
            KeyError: if the entry does not exist
            ValueError: if a field is already present
        """
        with self.store.transaction() as data:
            for kind in MEDIA_KINDS:
                raw = self._collection(data, kind).get(entry_id)
                if raw is not None:
                    break
            else:
                raise KeyError(entry_id)

            handles = raw.setdefault("cloudflare", {})
            clashes = sorted(name for name in fields if name in handles)
            if clashes:
                raise ValueError(f"Entry {entry_id} already has {', '.join(clashes)}")
            handles.update(fields)
            entry = self._parse(kind, raw)

        logger.info("library_entry_extended", entry_id=entry_id, fields=sorted(fields))
        return entry
