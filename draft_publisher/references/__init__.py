"""Resource reference discovery."""

from .classifier import classify_url
from .scanner import extract_url_context, scan_urls

__all__ = [
    "classify_url",
    "extract_url_context",
    "scan_urls",
]
