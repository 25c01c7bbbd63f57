"""Assemble the final MDX document from a draft and its resolved resources."""

import re
from typing import Any

from draft_publisher.core.logging import get_logger
from draft_publisher.core.schemas import (
    ArticleMetadata,
    DocumentEntry,
    DocumentKind,
    DocumentParams,
    Draft,
    ImageEntry,
    ImageParams,
    ResolvedResource,
    ResourceReference,
    VideoEntry,
    VideoParams,
)
from draft_publisher.references.scanner import BARE_URL_RE, MARKDOWN_LINK_RE, trim_bare_url

from .components import (
    component_name,
    hostname,
    link_icon,
    link_title,
    render_imports,
    render_link,
    render_media,
)
from .documents import render_frontmatter

logger = get_logger(__name__)

CASE_KEY_ORDER = (
    "title",
    "case_id",
    "description",
    "incident_date",
    "published",
    "city",
    "county",
    "age",
    "race",
    "gender",
    "agencies",
    "cause_of_death",
    "armed_status",
    "threat_level",
    "force_type",
    "shooting_officers",
    "investigation_status",
    "charges_filed",
    "civil_lawsuit_filed",
    "bodycam_available",
    "tags",
    "featured_image",
    "images",
    "videos",
    "documents",
    "external_links",
)

POST_KEY_ORDER = (
    "title",
    "description",
    "published_date",
    "published",
    "tags",
    "featured_image",
    "images",
    "videos",
    "documents",
    "external_links",
)

KEY_ORDER = {DocumentKind.CASE: CASE_KEY_ORDER, DocumentKind.POST: POST_KEY_ORDER}

EMBED_RE = re.compile(f"(?P<markdown>{MARKDOWN_LINK_RE.pattern})|(?P<bare>{BARE_URL_RE.pattern})")


def _drop_empty(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value not in (None, "")}


def resource_fields(
    resolved: list[ResolvedResource],
    links: list[ResourceReference],
) -> dict[str, list[dict[str, Any]]]:
    """Build the resource-list header fields, one item per resource."""
    images, videos, documents = [], [], []

    for item in resolved:
        entry, params = item.entry, item.reference.params
        if isinstance(entry, ImageEntry):
            image = params if isinstance(params, ImageParams) else ImageParams()
            images.append(
                {
                    "asset_id": entry.id,
                    "image_id": entry.cloudflare.image_id,
                    "alt": image.alt,
                    **_drop_empty({"caption": image.caption}),
                }
            )
        elif isinstance(entry, VideoEntry):
            video = params if isinstance(params, VideoParams) else VideoParams()
            videos.append(
                {
                    "asset_id": entry.id,
                    "video_id": entry.cloudflare.video_id,
                    **_drop_empty({"caption": video.caption, "thumbnail_url": entry.cloudflare.thumbnail_url}),
                }
            )
        elif isinstance(entry, DocumentEntry):
            document = params if isinstance(params, DocumentParams) else DocumentParams()
            documents.append(
                {
                    "asset_id": entry.id,
                    "title": document.title or hostname(entry.source_url),
                    **_drop_empty({"description": document.description}),
                    "url": entry.cloudflare.public_url,
                }
            )

    external_links = []
    for ref in links:
        description = getattr(ref.params, "description", None)
        external_links.append(
            {
                "url": ref.source_url,
                "title": link_title(ref),
                **_drop_empty({"description": description}),
                "icon": link_icon(ref).value,
            }
        )

    return {
        "images": images,
        "videos": videos,
        "documents": documents,
        "external_links": external_links,
    }


def substitute_embeds(body: str, embeds: dict[str, tuple[str, str]]) -> tuple[str, set[str]]:
    """Replace markdown links and bare URLs with component markup.

    Returns:
        The new body and the component names it now uses
    """
    used: set[str] = set()

    def _replace(match: re.Match) -> str:
        if match.group("markdown"):
            link = MARKDOWN_LINK_RE.fullmatch(match.group("markdown"))
            target = link.group(2) if link else None
            if target in embeds:
                name, markup = embeds[target]
                used.add(name)
                return markup
            return match.group(0)

        raw = match.group("bare")
        url = trim_bare_url(raw)
        if url in embeds:
            name, markup = embeds[url]
            used.add(name)
            return markup + raw[len(url):]
        return raw

    return EMBED_RE.sub(_replace, body), used


class DocumentAssembler:
    """Render the header, imports and transformed body of a document."""

    def header(
        self,
        kind: DocumentKind,
        metadata: ArticleMetadata,
        resolved: list[ResolvedResource],
        links: list[ResourceReference],
    ) -> dict[str, Any]:
        values = metadata.model_dump(mode="json", exclude={"featured_image"})
        if metadata.featured_image is not None:
            values["featured_image"] = _drop_empty(metadata.featured_image.model_dump(mode="json"))
        values.update(resource_fields(resolved, links))

        ordered = {}
        for key in KEY_ORDER[kind]:
            value = values.get(key)
            if value is None:
                continue
            ordered[key] = value
        return ordered

    def assemble(
        self,
        draft: Draft,
        resolved: list[ResolvedResource],
        links: list[ResourceReference],
        metadata: ArticleMetadata,
    ) -> str:
        """Produce the final document text.

        Every resolved resource and link is listed in the header, whether or
        not the body embeds it inline.
        """
        embeds = {
            item.reference.source_url: (component_name(item.entry), render_media(item.entry, item.reference))
            for item in resolved
        }
        embeds.update({ref.source_url: ("ExternalLinkCard", render_link(ref)) for ref in links})

        body, used = substitute_embeds(draft.body.strip(), embeds)
        header = render_frontmatter(self.header(draft.kind, metadata, resolved, links))

        parts = [header]
        if used:
            parts.append(render_imports(used) + "\n")
        parts.append(body + "\n")

        logger.info(
            "document_assembled",
            draft=draft.name,
            resources=len(resolved),
            links=len(links),
            inline_embeds=sorted(used),
        )
        return "\n".join(parts)
