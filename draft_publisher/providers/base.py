"""Base storage provider interface."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from draft_publisher.core.schemas import DocumentUpload, ImageUpload, VideoUpload


class StorageProvider(ABC):
    """Remote object/video storage.

    Providers give no deduplication guarantee: every call stores a new copy.
    Deduplication is the resource library's job.
    """

    @abstractmethod
    async def upload_video_from_url(
        self,
        source_url: str,
        meta: dict[str, Any],
    ) -> VideoUpload:
        """Transfer a remote video straight into the provider.

        Args:
            source_url: Public URL of the video
            meta: Descriptive metadata (name, caption)

        Returns:
            Provider handles for the stored video
        """

    @abstractmethod
    async def upload_image_from_url(
        self,
        source_url: str,
        meta: dict[str, Any],
    ) -> ImageUpload:
        """Transfer a remote image straight into the provider."""

    @abstractmethod
    async def upload_document(
        self,
        path: Path,
        meta: dict[str, Any],
    ) -> DocumentUpload:
        """Store a downloaded document file."""

    async def close(self) -> None:
        """Clean up resources."""
