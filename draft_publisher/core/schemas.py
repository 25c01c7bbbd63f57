"""Pydantic schemas for the draft publisher."""

from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceKind(str, Enum):
    """Kind of a resource referenced from a draft."""

    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    LINK = "link"

    @property
    def is_media(self) -> bool:
        """Media resources are stored in the resource library, links are not."""
        return self is not ResourceKind.LINK

    @property
    def library_key(self) -> str:
        if not self.is_media:
            raise ValueError("links are not stored in the resource library")
        return f"{self.value}s"


class DocumentKind(str, Enum):
    """Kind of a draft or published document."""

    CASE = "case"
    POST = "post"

    @property
    def folder(self) -> str:
        return f"{self.value}s"

    @classmethod
    def from_folder(cls, folder: str) -> "DocumentKind":
        for kind in cls:
            if kind.folder == folder:
                return kind
        raise ValueError(f"Unknown document folder: {folder}")


class LinkIcon(str, Enum):
    """Icon variant of an external link card."""

    VIDEO = "video"
    NEWS = "news"
    GENERIC = "generic"


class UploadState(str, Enum):
    """States a reference passes through while being resolved."""

    PENDING = "pending"
    LIBRARY_HIT = "library-hit"
    FETCHING = "fetching"
    FETCH_FAILED = "fetch-failed"
    FETCHED = "fetched"
    STORING = "storing"
    REGISTERED = "registered"


class PipelinePhase(str, Enum):
    """Ordered phases of one publishing run."""

    LOAD = "load"
    SCAN = "scan"
    CLASSIFY = "classify"
    EXTRACT = "extract"
    UPLOAD = "upload"
    ASSEMBLE = "assemble"
    COMMIT = "commit"


# Component parameters produced by metadata extraction. Required fields are
# enforced by batch validation, not here, so empty fallback params stay valid.


class ImageParams(BaseModel):
    alt: str = ""
    caption: Optional[str] = None


class VideoParams(BaseModel):
    caption: Optional[str] = None
    poster: Optional[str] = None


class DocumentParams(BaseModel):
    title: str = ""
    description: str = ""


class LinkParams(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[LinkIcon] = None


ComponentParams = Union[ImageParams, VideoParams, DocumentParams, LinkParams]

PARAMS_BY_KIND: dict[ResourceKind, type[BaseModel]] = {
    ResourceKind.IMAGE: ImageParams,
    ResourceKind.VIDEO: VideoParams,
    ResourceKind.DOCUMENT: DocumentParams,
    ResourceKind.LINK: LinkParams,
}


class ResourceReference(BaseModel):
    """A URL found in a draft, enriched as the pipeline progresses."""

    source_url: str
    kind: ResourceKind
    context: str = ""
    params: Optional[ComponentParams] = None
    confidence: float = 0.0

    def with_metadata(
        self,
        params: ComponentParams,
        confidence: float,
        kind: ResourceKind | None = None,
    ) -> "ResourceReference":
        return self.model_copy(
            update={
                "params": params,
                "confidence": confidence,
                "kind": kind or self.kind,
            }
        )

    def empty_metadata(self) -> "ResourceReference":
        """Return a copy with blank params and zero confidence."""
        return self.with_metadata(PARAMS_BY_KIND[self.kind](), 0.0)


class MetadataItem(BaseModel):
    """One validated item of an extraction response."""

    url: str
    type: ResourceKind
    params: ComponentParams
    confidence: float = Field(ge=0.0, le=1.0)


# Resource library entries. Field aliases are the keys of the persisted JSON.


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class VideoHandles(_CamelModel):
    video_id: str = Field(alias="videoId")
    embed_url: str = Field(default="", alias="embedUrl")
    stream_url: str = Field(default="", alias="streamUrl")
    thumbnail_url: str = Field(default="", alias="thumbnailUrl")


class ImageHandles(_CamelModel):
    image_id: str = Field(alias="imageId")
    variants: dict[str, str] = Field(default_factory=dict)


class DocumentHandles(_CamelModel):
    r2_key: str = Field(alias="r2Key")
    public_url: str = Field(alias="publicUrl")
    content_type: str = Field(default="application/octet-stream", alias="contentType")


class LibraryEntry(_CamelModel):
    id: str
    source_url: str = Field(alias="sourceUrl")
    added_at: datetime = Field(default_factory=utcnow, alias="addedAt")

    kind: ResourceKind = Field(default=ResourceKind.IMAGE, exclude=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class VideoEntry(LibraryEntry):
    kind: ResourceKind = Field(default=ResourceKind.VIDEO, exclude=True)
    cloudflare: VideoHandles


class ImageEntry(LibraryEntry):
    kind: ResourceKind = Field(default=ResourceKind.IMAGE, exclude=True)
    cloudflare: ImageHandles


class DocumentEntry(LibraryEntry):
    kind: ResourceKind = Field(default=ResourceKind.DOCUMENT, exclude=True)
    cloudflare: DocumentHandles


AnyLibraryEntry = Union[VideoEntry, ImageEntry, DocumentEntry]

ENTRY_BY_KIND: dict[ResourceKind, type[LibraryEntry]] = {
    ResourceKind.VIDEO: VideoEntry,
    ResourceKind.IMAGE: ImageEntry,
    ResourceKind.DOCUMENT: DocumentEntry,
}


# Storage provider results.


class VideoUpload(BaseModel):
    video_id: str
    embed_url: str = ""
    stream_url: str = ""
    thumbnail_url: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)


class ImageUpload(BaseModel):
    image_id: str
    variants: dict[str, str] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict)


class DocumentUpload(BaseModel):
    r2_key: str
    public_url: str
    content_type: str = "application/octet-stream"
    file_name: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)


class ResolvedResource(BaseModel):
    """A media reference paired with its resource library entry."""

    reference: ResourceReference
    entry: AnyLibraryEntry
    reused: bool = False

    @property
    def entry_id(self) -> str:
        return self.entry.id


# Drafts and published documents.


class Draft(BaseModel):
    """An author draft, tagged with its document kind at load time."""

    path: Path
    kind: DocumentKind
    text: str
    body: str
    frontmatter: dict[str, Any] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.path.name


class FeaturedImage(BaseModel):
    asset_id: str
    image_id: str
    alt: str = ""
    caption: Optional[str] = None


class ArticleMetadata(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    published: bool = True
    featured_image: Optional[FeaturedImage] = None


class CaseMetadata(ArticleMetadata):
    """Incident-level fields of a case document."""

    case_id: Optional[str] = None
    incident_date: Optional[str] = None
    city: str = Field(min_length=1)
    county: str = Field(min_length=1)
    age: Optional[int] = None
    race: Optional[str] = None
    gender: Optional[str] = None
    agencies: list[str] = Field(default_factory=list)
    cause_of_death: Optional[str] = None
    armed_status: Optional[str] = None
    threat_level: Optional[str] = None
    force_type: list[str] = Field(default_factory=list)
    shooting_officers: Optional[list[str]] = None
    investigation_status: Optional[str] = None
    charges_filed: Optional[bool] = None
    civil_lawsuit_filed: Optional[bool] = None
    bodycam_available: Optional[bool] = None
    tags: list[str] = Field(default_factory=list)


class PostMetadata(ArticleMetadata):
    """Post-level fields of an editorial post."""

    published_date: str = Field(default_factory=lambda: date.today().isoformat())
    tags: list[str] = Field(default_factory=list)


METADATA_BY_KIND: dict[DocumentKind, type[ArticleMetadata]] = {
    DocumentKind.CASE: CaseMetadata,
    DocumentKind.POST: PostMetadata,
}


class PublishResult(BaseModel):
    """Outcome of a successful publishing run."""

    document_path: Path
    archived_draft_path: Path
    new_uploads: int = 0
    reused: int = 0
    links: int = 0
    asset_ids: list[str] = Field(default_factory=list)
