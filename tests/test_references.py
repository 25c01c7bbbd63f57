"""Tests for URL scanning and classification."""

import pytest

from draft_publisher.core.schemas import ResourceKind
from draft_publisher.references import classify_url, extract_url_context, scan_urls


class TestScanUrls:
    """Tests for scan_urls."""

    def test_empty_text(self):
        """Test text without URLs yields nothing."""
        assert scan_urls("No links here.") == []

    def test_bare_and_markdown_url_collapsed(self):
        """Test a URL appearing bare and as a markdown link is returned once."""
        url = "https://example.com/photo.jpg"
        text = f"See {url} and also ![the scene]({url})."

        assert scan_urls(text) == [url]

    def test_markdown_target_does_not_leak_paren(self):
        """Test the bare scan inside a markdown link drops the closing paren."""
        text = "[report](https://example.com/report.pdf)"

        assert scan_urls(text) == ["https://example.com/report.pdf"]

    @pytest.mark.parametrize(
        "text,url",
        [
            ("see [x](https://a.test/page)foo", "https://a.test/page"),
            ("[report](https://a.test/b.pdf)'s findings", "https://a.test/b.pdf"),
        ],
    )
    def test_text_after_markdown_link_not_a_url(self, text, url):
        """Test text glued to a markdown link does not produce a second URL."""
        assert scan_urls(text) == [url]

    def test_markdown_target_with_parens(self):
        """Test a markdown target keeps its balanced parentheses."""
        url = "https://en.wikipedia.org/wiki/Taser_(device)"

        assert scan_urls(f"See [Taser]({url}) for background.") == [url]

    def test_trailing_punctuation_trimmed(self):
        """Test sentence punctuation is not part of a bare URL."""
        text = "Watch https://example.com/clip.mp4. Then read https://news.test/story, ok?"

        assert scan_urls(text) == [
            "https://example.com/clip.mp4",
            "https://news.test/story",
        ]

    def test_balanced_parens_kept(self):
        """Test a URL with balanced parentheses keeps them."""
        url = "https://en.wikipedia.org/wiki/Taser_(device)"

        assert scan_urls(f"Background: {url}") == [url]

    def test_order_of_first_appearance(self):
        """Test URLs are returned in order of first appearance."""
        text = "b https://b.test/2 a https://a.test/1 b https://b.test/2"

        assert scan_urls(text) == ["https://b.test/2", "https://a.test/1"]

    def test_relative_markdown_target_ignored(self):
        """Test non-http markdown targets are not resources."""
        assert scan_urls("[other case](/cases/john-doe)") == []

    def test_case_sensitive_dedup(self):
        """Test dedup is by exact string."""
        text = "https://example.com/A.png https://example.com/a.png"

        assert len(scan_urls(text)) == 2


class TestExtractUrlContext:
    """Tests for extract_url_context."""

    def test_window_around_first_occurrence(self):
        """Test the window spans context_chars on both sides."""
        url = "https://example.com/x.png"
        text = "a" * 20 + url + "b" * 20

        context = extract_url_context(text, url, context_chars=5)

        assert context == "aaaaa" + url + "bbbbb"

    def test_missing_url(self):
        """Test an absent URL yields empty context."""
        assert extract_url_context("text", "https://nope.test") == ""


class TestClassifyUrl:
    """Tests for classify_url."""

    @pytest.mark.parametrize(
        "url,kind",
        [
            ("https://example.com/a.JPG", ResourceKind.IMAGE),
            ("https://example.com/a.webp?width=400", ResourceKind.IMAGE),
            ("https://example.com/clip.mp4", ResourceKind.VIDEO),
            ("https://example.com/clip.mov#t=10", ResourceKind.VIDEO),
            ("https://example.com/report.pdf", ResourceKind.DOCUMENT),
            ("https://example.com/filing.docx?dl=1", ResourceKind.DOCUMENT),
            ("https://www.youtube.com/watch?v=abc", ResourceKind.LINK),
            ("https://news.test/story", ResourceKind.LINK),
        ],
    )
    def test_classification(self, url, kind):
        """Test extension rules and the link default."""
        assert classify_url(url) is kind

    def test_query_string_ignored(self):
        """Test an extension in the query string does not count."""
        assert classify_url("https://example.com/view?file=photo.jpg") is ResourceKind.LINK

    @pytest.mark.parametrize(
        "url",
        ["https://[invalid", "http://", "https://example.com/.pdf/", "not a url"],
    )
    def test_never_raises(self, url):
        """Test every input gets exactly one kind."""
        assert classify_url(url) in set(ResourceKind)
