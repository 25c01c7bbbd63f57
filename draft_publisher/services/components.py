"""MDX component markup for resolved resources and external links."""

from urllib.parse import urlsplit

from draft_publisher.core.schemas import (
    AnyLibraryEntry,
    DocumentEntry,
    DocumentParams,
    ImageEntry,
    ImageParams,
    LinkIcon,
    LinkParams,
    ResourceReference,
    VideoEntry,
    VideoParams,
)

COMPONENT_IMPORTS = {
    "CloudflareImage": "../../components/CloudflareImage.astro",
    "CloudflareVideo": "../../components/CloudflareVideo.astro",
    "DocumentCard": "../../components/DocumentCard.astro",
    "ExternalLinkCard": "../../components/ExternalLinkCard.astro",
}


def escape_attr(value: str | None) -> str:
    if not value:
        return ""
    return value.replace('"', "&quot;")


def hostname(url: str) -> str:
    try:
        host = urlsplit(url).hostname or url
    except ValueError:
        return url
    return host[4:] if host.startswith("www.") else host


def _tag(name: str, attrs: list[tuple[str, str | None]]) -> str:
    rendered = " ".join(f'{key}="{escape_attr(value)}"' for key, value in attrs if value)
    return f"<{name} {rendered} />"


def component_name(entry: AnyLibraryEntry) -> str:
    if isinstance(entry, VideoEntry):
        return "CloudflareVideo"
    if isinstance(entry, ImageEntry):
        return "CloudflareImage"
    return "DocumentCard"


def render_media(entry: AnyLibraryEntry, reference: ResourceReference | None = None) -> str:
    """Render the embed for a library entry using the reference's params."""
    params = reference.params if reference is not None else None

    if isinstance(entry, VideoEntry):
        caption = params.caption if isinstance(params, VideoParams) else None
        return _tag(
            "CloudflareVideo",
            [("videoId", entry.cloudflare.video_id), ("caption", caption)],
        )

    if isinstance(entry, ImageEntry):
        image = params if isinstance(params, ImageParams) else ImageParams()
        # alt is always emitted, even when empty, so gaps show up in review.
        attrs = [
            f'imageId="{escape_attr(entry.cloudflare.image_id)}"',
            f'alt="{escape_attr(image.alt)}"',
        ]
        if image.caption:
            attrs.append(f'caption="{escape_attr(image.caption)}"')
        return f"<CloudflareImage {' '.join(attrs)} />"

    if isinstance(entry, DocumentEntry):
        document = params if isinstance(params, DocumentParams) else DocumentParams()
        return _tag(
            "DocumentCard",
            [
                ("title", document.title or hostname(entry.source_url)),
                ("description", document.description),
                ("url", entry.cloudflare.public_url),
            ],
        )

    raise TypeError(f"Unsupported library entry: {type(entry).__name__}")


def link_title(reference: ResourceReference) -> str:
    params = reference.params if isinstance(reference.params, LinkParams) else LinkParams()
    return params.title or hostname(reference.source_url)


def link_icon(reference: ResourceReference) -> LinkIcon:
    params = reference.params if isinstance(reference.params, LinkParams) else LinkParams()
    return params.icon or LinkIcon.GENERIC


def render_link(reference: ResourceReference) -> str:
    """Render an external link card; the title falls back to the hostname."""
    params = reference.params if isinstance(reference.params, LinkParams) else LinkParams()
    return _tag(
        "ExternalLinkCard",
        [
            ("url", reference.source_url),
            ("title", link_title(reference)),
            ("description", params.description),
            ("icon", link_icon(reference).value),
        ],
    )


def render_imports(names: set[str]) -> str:
    return "\n".join(
        f"import {name} from '{COMPONENT_IMPORTS[name]}';"
        for name in sorted(names)
    )
