"""Resolve media references to resource library entries."""

import asyncio
from pathlib import Path

from draft_publisher.core.config import settings
from draft_publisher.core.exceptions import PublisherError, UploadError
from draft_publisher.core.logging import get_logger
from draft_publisher.core.schemas import (
    AnyLibraryEntry,
    DocumentParams,
    ImageParams,
    ResolvedResource,
    ResourceKind,
    ResourceReference,
    UploadState,
    VideoParams,
)
from draft_publisher.providers import FileDownloader, StorageProvider
from draft_publisher.providers.downloader import filename_from_url

from .library import ResourceLibrary

logger = get_logger(__name__)


class UploadOrchestrator:
    """Look up, fetch, store and register media references.

    A reference whose source URL is already in the library is returned as
    is: no fetch, no upload. Otherwise the resource is fetched, stored with
    the provider and registered. Any failure raises ``UploadError``.
    """

    def __init__(
        self,
        library: ResourceLibrary,
        provider: StorageProvider,
        downloader: FileDownloader | None = None,
        temp_dir: Path | None = None,
    ):
        self.library = library
        self.provider = provider
        self.downloader = downloader or FileDownloader()
        self.temp_dir = temp_dir or settings.resolve(settings.temp_dir)
        self._url_locks: dict[str, asyncio.Lock] = {}
        self._library_lock = asyncio.Lock()

    def _transition(self, reference: ResourceReference, state: UploadState) -> UploadState:
        logger.debug(
            "upload_state",
            source_url=reference.source_url,
            kind=reference.kind.value,
            state=state.value,
        )
        return state

    async def resolve(self, reference: ResourceReference) -> ResolvedResource:
        """Resolve one image, video or document reference.

        Raises:
            UploadError: if fetching or storing fails
            ValueError: for link references
        """
        if not reference.kind.is_media:
            raise ValueError(f"Links are not uploaded: {reference.source_url}")

        # Same URL resolved twice in one run must not upload twice.
        lock = self._url_locks.setdefault(reference.source_url, asyncio.Lock())
        async with lock:
            self._transition(reference, UploadState.PENDING)
            existing = self.library.find_by_source_url(reference.source_url)
            if existing is not None:
                self._transition(reference, UploadState.LIBRARY_HIT)
                logger.info(
                    "library_hit",
                    entry_id=existing.id,
                    source_url=reference.source_url,
                )
                return ResolvedResource(reference=reference, entry=existing, reused=True)

            try:
                entry = await self._fetch_and_store(reference)
            except PublisherError:
                raise
            except Exception as e:
                logger.error(
                    "upload_failed",
                    source_url=reference.source_url,
                    kind=reference.kind.value,
                    error=str(e),
                )
                raise UploadError(
                    f"{reference.kind.value} upload failed: {e}",
                    reference.source_url,
                    kind=reference.kind,
                    state=UploadState.STORING,
                ) from e

            self._transition(reference, UploadState.REGISTERED)
            return ResolvedResource(reference=reference, entry=entry, reused=False)

    async def _fetch_and_store(self, reference: ResourceReference) -> AnyLibraryEntry:
        url = reference.source_url
        self._transition(reference, UploadState.FETCHING)

        try:
            if reference.kind is ResourceKind.IMAGE:
                params = reference.params if isinstance(reference.params, ImageParams) else ImageParams()
                upload = await self.provider.upload_image_from_url(
                    url, {"description": params.alt}
                )
            elif reference.kind is ResourceKind.VIDEO:
                params = reference.params if isinstance(reference.params, VideoParams) else VideoParams()
                upload = await self.provider.upload_video_from_url(
                    url,
                    {
                        "name": params.caption or filename_from_url(url) or "Video",
                        "description": params.caption or "",
                    },
                )
            else:
                return await self._fetch_and_store_document(reference)
        except PublisherError:
            raise
        except Exception as e:
            self._transition(reference, UploadState.FETCH_FAILED)
            raise UploadError(
                f"could not transfer {reference.kind.value}: {e}",
                url,
                kind=reference.kind,
                state=UploadState.FETCH_FAILED,
            ) from e

        self._transition(reference, UploadState.FETCHED)
        self._transition(reference, UploadState.STORING)
        async with self._library_lock:
            if reference.kind is ResourceKind.IMAGE:
                return self.library.register_image(url, upload)
            return self.library.register_video(url, upload)

    async def _fetch_and_store_document(self, reference: ResourceReference) -> AnyLibraryEntry:
        url = reference.source_url
        try:
            downloaded = await self.downloader.download(url, self.temp_dir)
        except Exception as e:
            self._transition(reference, UploadState.FETCH_FAILED)
            raise UploadError(
                f"could not download document: {e}",
                url,
                kind=reference.kind,
                state=UploadState.FETCH_FAILED,
            ) from e

        self._transition(reference, UploadState.FETCHED)
        params = reference.params if isinstance(reference.params, DocumentParams) else DocumentParams()
        try:
            self._transition(reference, UploadState.STORING)
            upload = await self.provider.upload_document(
                downloaded.path,
                {
                    "file_name": downloaded.file_name,
                    "content_type": downloaded.content_type,
                    "title": params.title,
                    "description": params.description,
                },
            )
        except Exception as e:
            raise UploadError(
                f"could not store document: {e}",
                url,
                kind=reference.kind,
                state=UploadState.STORING,
            ) from e
        finally:
            downloaded.path.unlink(missing_ok=True)

        async with self._library_lock:
            return self.library.register_document(url, upload)

    async def resolve_all(
        self,
        references: list[ResourceReference],
        max_concurrent: int | None = None,
    ) -> list[ResolvedResource]:
        """Resolve media references concurrently, in input order.

        Waits for every transfer to settle before raising the first failure.
        """
        media = [ref for ref in references if ref.kind.is_media]
        semaphore = asyncio.Semaphore(max_concurrent or settings.max_concurrent_uploads)

        async def _resolve(reference: ResourceReference) -> ResolvedResource:
            async with semaphore:
                return await self.resolve(reference)

        try:
            results = await asyncio.gather(
                *(_resolve(ref) for ref in media),
                return_exceptions=True,
            )
        finally:
            self.cleanup()

        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            logger.error("uploads_failed", failed=len(failures), total=len(media))
            raise failures[0]

        resolved = [result for result in results if isinstance(result, ResolvedResource)]
        logger.info(
            "uploads_resolved",
            total=len(resolved),
            reused=sum(1 for item in resolved if item.reused),
        )
        return resolved

    def cleanup(self) -> None:
        """Remove the temp directory if nothing is left in it."""
        try:
            self.temp_dir.rmdir()
        except OSError:
            pass

    async def close(self) -> None:
        await self.downloader.close()
        await self.provider.close()
