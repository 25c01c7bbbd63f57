"""Core utilities for the draft publisher."""

from .config import settings
from .schemas import (
    DocumentKind,
    Draft,
    LibraryEntry,
    PipelinePhase,
    PublishResult,
    ResolvedResource,
    ResourceKind,
    ResourceReference,
    UploadState,
)

__all__ = [
    "settings",
    "DocumentKind",
    "Draft",
    "LibraryEntry",
    "PipelinePhase",
    "PublishResult",
    "ResolvedResource",
    "ResourceKind",
    "ResourceReference",
    "UploadState",
]
