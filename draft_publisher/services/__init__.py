"""Services for the draft publisher."""

from .article_metadata import (
    ArticleMetadataSource,
    FrontmatterMetadataSource,
    OpenAIArticleMetadataSource,
)
from .assembler import DocumentAssembler
from .documents import DraftStore, PublishedStore
from .extraction import MetadataExtractor, OpenAIMetadataExtractor, extract_metadata
from .library import ResourceLibrary
from .publisher import AutoCheckpoint, Checkpoint, Publisher
from .uploads import UploadOrchestrator
from .vocabulary import VocabularyRegistry

__all__ = [
    "ArticleMetadataSource",
    "FrontmatterMetadataSource",
    "OpenAIArticleMetadataSource",
    "DocumentAssembler",
    "DraftStore",
    "PublishedStore",
    "MetadataExtractor",
    "OpenAIMetadataExtractor",
    "extract_metadata",
    "ResourceLibrary",
    "AutoCheckpoint",
    "Checkpoint",
    "Publisher",
    "UploadOrchestrator",
    "VocabularyRegistry",
]
