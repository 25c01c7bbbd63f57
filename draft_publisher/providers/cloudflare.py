"""Cloudflare Images, Stream and R2 storage provider."""

import asyncio
import json
import re
import time
from pathlib import Path
from typing import Any

import boto3
import httpx

from draft_publisher.core.config import Settings, settings as default_settings
from draft_publisher.core.logging import get_logger
from draft_publisher.core.schemas import DocumentUpload, ImageUpload, VideoUpload

from .base import StorageProvider
from .downloader import convert_to_direct_download_url

logger = get_logger(__name__)

API_BASE = "https://api.cloudflare.com/client/v4/accounts"
IMAGE_VARIANTS = ("thumbnail", "medium", "large", "public")
UNSAFE_KEY_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


class CloudflareError(Exception):
    """Cloudflare API returned an unsuccessful response."""


class CloudflareProvider(StorageProvider):
    """Stores images in Cloudflare Images, videos in Stream, documents in R2."""

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings
        self._client: httpx.AsyncClient | None = None
        self._s3 = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the Cloudflare API client."""
        if self._client is None:
            if not self.config.cloudflare_account_id or not self.config.cloudflare_api_token:
                raise ValueError("Cloudflare credentials not configured")
            self._client = httpx.AsyncClient(
                base_url=f"{API_BASE}/{self.config.cloudflare_account_id}",
                timeout=self.config.http_timeout_seconds,
                headers={"Authorization": f"Bearer {self.config.cloudflare_api_token}"},
            )
        return self._client

    def _get_s3(self):
        """Get or create the R2 client (S3 compatible API)."""
        if self._s3 is None:
            if not self.config.r2_access_key_id or not self.config.r2_secret_access_key:
                raise ValueError("R2 credentials not configured")
            self._s3 = boto3.client(
                "s3",
                endpoint_url=self.config.r2_endpoint_url,
                aws_access_key_id=self.config.r2_access_key_id,
                aws_secret_access_key=self.config.r2_secret_access_key,
                region_name="auto",
            )
        return self._s3

    @staticmethod
    def _result(response: httpx.Response, action: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise CloudflareError(f"{action} returned a non-JSON response")

        if not data.get("success"):
            raise CloudflareError(f"{action} failed: {json.dumps(data.get('errors', []))}")
        return data["result"]

    def image_variant_urls(self, image_id: str) -> dict[str, str]:
        account_hash = self.config.cloudflare_images_account_hash
        return {
            variant: f"https://imagedelivery.net/{account_hash}/{image_id}/{variant}"
            for variant in IMAGE_VARIANTS
        }

    def stream_urls(self, video_id: str) -> dict[str, str]:
        base = (
            f"https://customer-{self.config.cloudflare_stream_customer_code}"
            f".cloudflarestream.com/{video_id}"
        )
        return {
            "embed_url": f"{base}/iframe",
            "stream_url": f"{base}/manifest/video.m3u8",
            "thumbnail_url": f"{base}/thumbnails/thumbnail.jpg",
        }

    async def upload_image_from_url(
        self,
        source_url: str,
        meta: dict[str, Any],
    ) -> ImageUpload:
        client = await self._get_client()

        # Images requires multipart even when no file is attached.
        fields: dict[str, tuple[None, str]] = {
            "url": (None, convert_to_direct_download_url(source_url)),
            "requireSignedURLs": (None, "false"),
        }
        if meta.get("description"):
            fields["metadata"] = (None, json.dumps({"description": meta["description"]}))

        response = await client.post("/images/v1", files=fields)
        result = self._result(response, "Cloudflare Images upload")
        image_id = result["id"]

        logger.info("cloudflare_image_uploaded", image_id=image_id, source_url=source_url)
        return ImageUpload(
            image_id=image_id,
            variants=self.image_variant_urls(image_id),
            raw=result,
        )

    async def upload_video_from_url(
        self,
        source_url: str,
        meta: dict[str, Any],
    ) -> VideoUpload:
        client = await self._get_client()

        payload = {
            "url": convert_to_direct_download_url(source_url),
            "meta": {
                "name": meta.get("name") or "Video",
                "description": meta.get("description") or "",
            },
        }
        response = await client.post("/stream/copy", json=payload)
        result = self._result(response, "Cloudflare Stream copy")
        video_id = result["uid"]

        logger.info("cloudflare_video_uploaded", video_id=video_id, source_url=source_url)
        return VideoUpload(video_id=video_id, raw=result, **self.stream_urls(video_id))

    async def upload_document(
        self,
        path: Path,
        meta: dict[str, Any],
    ) -> DocumentUpload:
        if not self.config.r2_bucket:
            raise ValueError("R2 bucket not configured")

        s3 = self._get_s3()
        safe_name = UNSAFE_KEY_CHARS_RE.sub("-", meta.get("file_name") or path.name).strip("-")
        key = f"documents/{int(time.time())}-{safe_name or 'document'}"
        content_type = meta.get("content_type") or "application/octet-stream"

        object_metadata = {
            name: str(meta[name])
            for name in ("title", "description")
            if meta.get(name)
        }

        def _put() -> dict[str, Any]:
            with path.open("rb") as body:
                return s3.put_object(
                    Bucket=self.config.r2_bucket,
                    Key=key,
                    Body=body,
                    ContentType=content_type,
                    Metadata=object_metadata,
                )

        response = await asyncio.to_thread(_put)
        public_url = f"{self.config.r2_public_url.rstrip('/')}/{key}"

        logger.info("r2_document_uploaded", key=key, public_url=public_url)
        return DocumentUpload(
            r2_key=key,
            public_url=public_url,
            content_type=content_type,
            file_name=meta.get("file_name") or path.name,
            raw={"etag": response.get("ETag", "")},
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self._s3 = None
