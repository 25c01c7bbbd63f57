"""Sources of the document-level metadata of a case or post."""

import json
from abc import ABC, abstractmethod
from datetime import date
from typing import Any

from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI, RateLimitError
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from draft_publisher.core.config import Settings, settings as default_settings
from draft_publisher.core.exceptions import DraftInputError, ExtractionUnavailableError
from draft_publisher.core.logging import get_logger
from draft_publisher.core.schemas import (
    METADATA_BY_KIND,
    ArticleMetadata,
    DocumentKind,
    Draft,
    FeaturedImage,
    ImageEntry,
    ImageParams,
    ResolvedResource,
    ResourceReference,
)

from .vocabulary import VocabularyRegistry

logger = get_logger(__name__)

# Header keys that the assembler owns.
RESOURCE_KEYS = ("featured_image", "images", "videos", "documents", "external_links")


def parse_article_metadata(
    kind: DocumentKind,
    data: dict[str, Any],
    draft: Draft,
) -> ArticleMetadata:
    """Validate raw metadata as the model for ``kind``.

    Raises:
        DraftInputError: naming every missing or invalid field
    """
    fields = {
        key: value.isoformat() if isinstance(value, date) else value
        for key, value in data.items()
        if key not in RESOURCE_KEYS
    }
    try:
        return METADATA_BY_KIND[kind].model_validate(fields)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise DraftInputError(f"invalid {kind.value} metadata ({problems})", draft.path) from e


def featured_image_for(
    resolved: list[ResolvedResource],
    asset_id: str | None = None,
    source_url: str | None = None,
) -> FeaturedImage | None:
    """Pick the featured image among resolved images.

    Matches ``asset_id`` or ``source_url`` when given, else the first image.
    """
    images = [item for item in resolved if isinstance(item.entry, ImageEntry)]
    if asset_id or source_url:
        images = [
            item for item in images
            if item.entry_id == asset_id or item.entry.source_url == source_url
        ]
    if not images:
        return None

    chosen = images[0]
    params = chosen.reference.params if isinstance(chosen.reference.params, ImageParams) else ImageParams()
    return FeaturedImage(
        asset_id=chosen.entry_id,
        image_id=chosen.entry.cloudflare.image_id,
        alt=params.alt,
        caption=params.caption,
    )


class ArticleMetadataSource(ABC):
    """Supplies the case or post fields of a document."""

    def check_draft(self, draft: Draft) -> None:
        """Reject a draft before any network call is made.

        Raises:
            DraftInputError: if the draft cannot produce valid metadata
        """

    @abstractmethod
    async def describe(
        self,
        draft: Draft,
        resolved: list[ResolvedResource],
        links: list[ResourceReference],
        vocabulary: VocabularyRegistry,
    ) -> ArticleMetadata:
        """Return the validated metadata for ``draft``."""

    async def close(self) -> None:
        pass


class FrontmatterMetadataSource(ArticleMetadataSource):
    """Read the metadata from the draft's own YAML header.

    ``featured_image`` may name an asset id or a source URL; without it the
    first image of the draft is featured.
    """

    def check_draft(self, draft: Draft) -> None:
        if not draft.frontmatter:
            raise DraftInputError("draft has no YAML header with document metadata", draft.path)
        parse_article_metadata(draft.kind, draft.frontmatter, draft)

    async def describe(self, draft, resolved, links, vocabulary) -> ArticleMetadata:
        metadata = parse_article_metadata(draft.kind, draft.frontmatter, draft)

        wanted = draft.frontmatter.get("featured_image")
        if isinstance(wanted, str) and wanted:
            featured = featured_image_for(resolved, asset_id=wanted, source_url=wanted)
            if featured is None:
                raise DraftInputError(
                    f"featured_image {wanted!r} is not an image of this draft", draft.path
                )
        else:
            featured = featured_image_for(resolved)

        return metadata.model_copy(update={"featured_image": featured})


ARTICLE_PROMPT = """You prepare structured metadata for a {kind} on a police accountability site.

Read the author's notes and fill in the fields listed below. Use only facts stated in the notes.
Prefer values from the known vocabulary; only introduce a new value if none of the known ones fits.

Known vocabulary:
{vocabulary}

Fields (JSON keys): {fields}
Required: {required}

Images available as featured image (asset id: alt text):
{images}

Author notes:
---
{body}
---

Return a single JSON object with the fields above and "featured_image_asset_id" set to one of the asset ids (or null).
If the notes do not contain enough information for the required fields, return {{"error": true, "message": "what is missing"}}.
"""


class OpenAIArticleMetadataSource(ArticleMetadataSource):
    """Ask an OpenAI chat model for the document metadata."""

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            if not self.config.openai_api_key:
                raise ExtractionUnavailableError("OpenAI API key not configured")
            self._client = AsyncOpenAI(
                api_key=self.config.openai_api_key,
                timeout=self.config.http_timeout_seconds,
            )
        return self._client

    @staticmethod
    def build_prompt(
        draft: Draft,
        resolved: list[ResolvedResource],
        vocabulary: VocabularyRegistry,
    ) -> str:
        model = METADATA_BY_KIND[draft.kind]
        fields = [name for name in model.model_fields if name != "featured_image"]
        required = [name for name in fields if model.model_fields[name].is_required()]
        images = [
            f"- {item.entry_id}: {item.reference.params.alt if isinstance(item.reference.params, ImageParams) else ''}"
            for item in resolved
            if isinstance(item.entry, ImageEntry)
        ]
        return ARTICLE_PROMPT.format(
            kind=draft.kind.value,
            vocabulary=vocabulary.format_for_prompt(draft.kind),
            fields=", ".join(fields),
            required=", ".join(required),
            images="\n".join(images) or "(none)",
            body=draft.body[:12000],
        )

    @retry(
        retry=retry_if_exception_type((APIConnectionError, APITimeoutError, RateLimitError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        reraise=True,
    )
    async def _call_llm(self, prompt: str) -> str:
        client = self._get_client()
        response = await client.chat.completions.create(
            model=self.config.openai_model,
            messages=[
                {
                    "role": "system",
                    "content": "You extract structured case metadata from notes. Always respond with valid JSON.",
                },
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0.1,
            max_tokens=2000,
        )
        return response.choices[0].message.content or ""

    async def describe(self, draft, resolved, links, vocabulary) -> ArticleMetadata:
        try:
            content = await self._call_llm(self.build_prompt(draft, resolved, vocabulary))
        except APIError as e:
            raise ExtractionUnavailableError(f"OpenAI request failed: {e}") from e

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise DraftInputError(f"metadata response is not valid JSON ({e})", draft.path) from e
        if not isinstance(data, dict):
            raise DraftInputError("metadata response is not an object", draft.path)

        if data.get("error"):
            raise DraftInputError(
                data.get("message") or "notes lack the information for required fields",
                draft.path,
            )

        asset_id = data.pop("featured_image_asset_id", None)
        metadata = parse_article_metadata(draft.kind, data, draft)
        featured = featured_image_for(resolved, asset_id=asset_id) if asset_id else None
        if featured is None:
            featured = featured_image_for(resolved)

        logger.info("article_metadata_generated", draft=draft.name, title=metadata.title)
        return metadata.model_copy(update={"featured_image": featured})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
