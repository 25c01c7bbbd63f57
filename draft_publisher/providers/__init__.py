"""Remote storage providers."""

from .base import StorageProvider
from .cloudflare import CloudflareProvider
from .downloader import FileDownloader, convert_to_direct_download_url

__all__ = [
    "StorageProvider",
    "CloudflareProvider",
    "FileDownloader",
    "convert_to_direct_download_url",
]
