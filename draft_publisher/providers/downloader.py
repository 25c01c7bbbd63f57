"""Download remote files into a local directory."""

import re
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlsplit

import httpx

from draft_publisher.core.config import settings
from draft_publisher.core.logging import get_logger

logger = get_logger(__name__)


MIME_TO_EXT = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "video/x-msvideo": ".avi",
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
}

DRIVE_FILE_ID_RE = re.compile(r"/d/([^/]+)")
DROPBOX_DL_PARAM_RE = re.compile(r"[?&]dl=[01]")


def convert_to_direct_download_url(url: str) -> str:
    """Rewrite Dropbox and Google Drive share links into direct download links."""
    if "dropbox.com" in url:
        direct = url.replace("www.dropbox.com", "dl.dropboxusercontent.com")
        return DROPBOX_DL_PARAM_RE.sub("", direct)

    if "drive.google.com" in url:
        match = DRIVE_FILE_ID_RE.search(url)
        if match:
            return f"https://drive.google.com/uc?export=download&id={match.group(1)}"

    return url


def extension_from_content_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    mime_type = content_type.split(";")[0].strip().lower()
    return MIME_TO_EXT.get(mime_type)


def filename_from_url(url: str) -> str | None:
    try:
        name = PurePosixPath(unquote(urlsplit(url).path)).name
    except ValueError:
        return None
    return name or None


@dataclass
class DownloadedFile:
    """A file fetched to local disk."""

    path: Path
    file_name: str
    content_type: str


class FileDownloader:
    """Stream remote files to disk with httpx."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout or settings.http_timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": "draft-publisher/0.1"},
                follow_redirects=True,
            )
        return self._client

    async def download(self, url: str, dest_dir: Path) -> DownloadedFile:
        """Download ``url`` into ``dest_dir``.

        The extension comes from the response Content-Type, falling back to
        the URL path.

        Raises:
            httpx.HTTPError: on connection failures and non-2xx responses
        """
        dest_dir.mkdir(parents=True, exist_ok=True)
        direct_url = convert_to_direct_download_url(url)
        client = await self._get_client()

        async with client.stream("GET", direct_url) as response:
            response.raise_for_status()
            content_type = response.headers.get("content-type", "application/octet-stream")

            url_name = filename_from_url(url)
            ext = extension_from_content_type(content_type)
            if url_name and PurePosixPath(url_name).suffix:
                file_name = url_name
            else:
                stem = url_name or "download"
                file_name = f"{stem}{ext or ''}"

            path = dest_dir / f"{uuid.uuid4().hex[:8]}-{file_name}"
            try:
                with path.open("wb") as handle:
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)
            except Exception:
                path.unlink(missing_ok=True)
                raise

        logger.info("file_downloaded", url=url, path=str(path), content_type=content_type)
        return DownloadedFile(
            path=path,
            file_name=file_name,
            content_type=content_type.split(";")[0].strip(),
        )

    async def close(self) -> None:
        """Clean up HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
