"""Tests for document assembly and component markup."""

from pathlib import Path

from draft_publisher.core.schemas import (
    CaseMetadata,
    DocumentEntry,
    DocumentHandles,
    DocumentKind,
    DocumentParams,
    Draft,
    FeaturedImage,
    ImageEntry,
    ImageHandles,
    ImageParams,
    LinkIcon,
    LinkParams,
    PostMetadata,
    ResolvedResource,
    ResourceKind,
    ResourceReference,
    VideoEntry,
    VideoHandles,
)
from draft_publisher.services import DocumentAssembler
from draft_publisher.services.components import escape_attr, render_link, render_media
from draft_publisher.services.documents import split_frontmatter


def image(url: str, entry_id: str, alt: str = "Alt text") -> ResolvedResource:
    return ResolvedResource(
        reference=ResourceReference(source_url=url, kind=ResourceKind.IMAGE, params=ImageParams(alt=alt)),
        entry=ImageEntry(id=entry_id, source_url=url, cloudflare=ImageHandles(image_id=f"cf-{entry_id}")),
    )


def video(url: str, entry_id: str) -> ResolvedResource:
    return ResolvedResource(
        reference=ResourceReference(source_url=url, kind=ResourceKind.VIDEO),
        entry=VideoEntry(id=entry_id, source_url=url, cloudflare=VideoHandles(video_id=f"v-{entry_id}")),
        reused=True,
    )


def document(url: str, entry_id: str) -> ResolvedResource:
    return ResolvedResource(
        reference=ResourceReference(
            source_url=url,
            kind=ResourceKind.DOCUMENT,
            params=DocumentParams(title="Autopsy report", description="Coroner findings."),
        ),
        entry=DocumentEntry(
            id=entry_id,
            source_url=url,
            cloudflare=DocumentHandles(r2_key="documents/r.pdf", public_url="https://files.test/documents/r.pdf"),
        ),
    )


def link(url: str, **params) -> ResourceReference:
    return ResourceReference(source_url=url, kind=ResourceKind.LINK, params=LinkParams(**params))


def make_draft(body: str, kind: DocumentKind = DocumentKind.CASE) -> Draft:
    return Draft(path=Path(f"drafts/{kind.folder}/x.md"), kind=kind, text=body, body=body)


CASE = CaseMetadata(
    title="Jane Doe",
    description="Shot during a traffic stop.",
    city="Springfield",
    county="Lane",
    agencies=["Springfield Police Department"],
    threat_level="No Threat",
)


class TestComponents:
    """Tests for component markup."""

    def test_escape_quotes(self):
        """Test double quotes are escaped in attributes."""
        assert escape_attr('The "bad" day') == "The &quot;bad&quot; day"

    def test_image_always_has_alt(self):
        """Test images carry alt even when extraction gave none."""
        markup = render_media(image("https://x.test/a.png", "image-1", alt="").entry)

        assert markup == '<CloudflareImage imageId="cf-image-1" alt="" />'

    def test_document_card(self):
        """Test documents render as cards with their public URL."""
        resolved = document("https://x.test/r.pdf", "document-1")

        markup = render_media(resolved.entry, resolved.reference)

        assert markup == (
            '<DocumentCard title="Autopsy report" description="Coroner findings." '
            'url="https://files.test/documents/r.pdf" />'
        )

    def test_link_title_falls_back_to_hostname(self):
        """Test an untitled link uses the hostname and generic icon."""
        markup = render_link(link("https://www.news.test/story"))

        assert markup == '<ExternalLinkCard url="https://www.news.test/story" title="news.test" icon="generic" />'


class TestDocumentAssembler:
    """Tests for DocumentAssembler."""

    def test_header_key_order(self):
        """Test case headers follow the fixed key order."""
        text = DocumentAssembler().assemble(make_draft("Body"), [], [], CASE)

        header, _ = split_frontmatter(text)
        assert list(header) == [
            "title",
            "description",
            "published",
            "city",
            "county",
            "agencies",
            "threat_level",
            "force_type",
            "tags",
            "images",
            "videos",
            "documents",
            "external_links",
        ]

    def test_post_header(self):
        """Test post headers use the post order."""
        post = PostMetadata(title="Update", description="News.", published_date="2024-05-01", tags=["Policy"])

        header, _ = split_frontmatter(
            DocumentAssembler().assemble(make_draft("Body", DocumentKind.POST), [], [], post)
        )

        assert list(header)[:5] == ["title", "description", "published_date", "published", "tags"]

    def test_inline_substitution(self):
        """Test markdown links and bare URLs become components where they occurred."""
        body = (
            "The scene: ![scene](https://x.test/a.png)\n\n"
            "Footage https://x.test/clip.mp4.\n\n"
            "Coverage: [LA Times](https://news.test/story)"
        )
        resolved = [image("https://x.test/a.png", "image-1"), video("https://x.test/clip.mp4", "video-1")]
        links = [link("https://news.test/story", title="Coverage", icon=LinkIcon.NEWS)]

        text = DocumentAssembler().assemble(make_draft(body), resolved, links, CASE)
        _, rest = split_frontmatter(text)

        assert "import CloudflareImage from '../../components/CloudflareImage.astro';" in rest
        assert "import CloudflareVideo from '../../components/CloudflareVideo.astro';" in rest
        assert "The scene: <CloudflareImage imageId=\"cf-image-1\" alt=\"Alt text\" />" in rest
        assert "Footage <CloudflareVideo videoId=\"v-video-1\" />." in rest
        assert 'Coverage: <ExternalLinkCard url="https://news.test/story" title="Coverage" icon="news" />' in rest
        assert "![scene]" not in rest

    def test_every_resource_listed_even_if_not_inlined(self):
        """Test header lists contain all resolved resources and links."""
        resolved = [
            image("https://x.test/a.png", "image-1"),
            image("https://x.test/b.png", "image-2"),
            video("https://x.test/clip.mp4", "video-1"),
            document("https://x.test/r.pdf", "document-1"),
        ]
        links = [link("https://news.test/story")]

        text = DocumentAssembler().assemble(make_draft("No inline URLs."), resolved, links, CASE)
        header, _ = split_frontmatter(text)

        listed = {item["asset_id"] for key in ("images", "videos", "documents") for item in header[key]}
        assert listed == {"image-1", "image-2", "video-1", "document-1"}
        assert header["external_links"] == [
            {"url": "https://news.test/story", "title": "news.test", "icon": "generic"}
        ]
        assert header["documents"][0]["url"] == "https://files.test/documents/r.pdf"

    def test_featured_image(self):
        """Test the featured image is written to the header."""
        metadata = CASE.model_copy(
            update={"featured_image": FeaturedImage(asset_id="image-1", image_id="cf-image-1", alt="Alt text")}
        )

        header, _ = split_frontmatter(DocumentAssembler().assemble(make_draft("Body"), [], [], metadata))

        assert header["featured_image"] == {"asset_id": "image-1", "image_id": "cf-image-1", "alt": "Alt text"}

    def test_markdown_link_with_parens_substituted(self):
        """Test a markdown link whose target has parentheses is replaced whole."""
        url = "https://en.wikipedia.org/wiki/Taser_(device)"
        body = f"See [Taser]({url}) for background."

        _, rest = split_frontmatter(
            DocumentAssembler().assemble(make_draft(body), [], [link(url, title="Taser")], CASE)
        )

        assert (
            f'See <ExternalLinkCard url="{url}" title="Taser" icon="generic" /> for background.'
            in rest
        )

    def test_unresolved_urls_untouched(self):
        """Test URLs that are not resources stay as written."""
        body = "See [the site](https://elsewhere.test) and https://other.test/page."

        _, rest = split_frontmatter(DocumentAssembler().assemble(make_draft(body), [], [], CASE))

        assert rest.strip() == body
