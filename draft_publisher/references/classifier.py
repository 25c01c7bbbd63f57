"""Syntactic resource classification by file extension."""

import re
from urllib.parse import urlsplit

from draft_publisher.core.schemas import ResourceKind

# Checked in order; the first match wins.
KIND_PATTERNS: list[tuple[ResourceKind, re.Pattern[str]]] = [
    (
        ResourceKind.IMAGE,
        re.compile(r"\.(jpg|jpeg|png|gif|webp|svg|bmp|ico)$", re.IGNORECASE),
    ),
    (
        ResourceKind.VIDEO,
        re.compile(r"\.(mp4|mov|avi|wmv|flv|mkv|webm|m4v)$", re.IGNORECASE),
    ),
    (
        ResourceKind.DOCUMENT,
        re.compile(r"\.(pdf|doc|docx|xls|xlsx|ppt|pptx|txt)$", re.IGNORECASE),
    ),
]


def _url_path(url: str) -> str:
    try:
        return urlsplit(url).path
    except ValueError:
        return re.split(r"[?#]", url, maxsplit=1)[0]


def classify_url(url: str) -> ResourceKind:
    """Classify a URL as image, video, document or link.

    Only the path is inspected, so query strings and fragments never affect
    the result. Anything without a known extension is a link.
    """
    path = _url_path(url)
    for kind, pattern in KIND_PATTERNS:
        if pattern.search(path):
            return kind
    return ResourceKind.LINK
