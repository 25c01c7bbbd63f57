"""Find resource URLs embedded in draft text."""

import re

MARKDOWN_LINK_RE = re.compile(
    r"!?\[([^\]]*)\]\(\s*<?((?:[^()\s<>]|\([^()\s<>]*\))+)>?(?:\s+[\"'][^)]*[\"'])?\s*\)"
)
BARE_URL_RE = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+")
URL_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)

TRAILING_PUNCTUATION = ".,;:!?'\""


def trim_bare_url(url: str) -> str:
    """Drop sentence punctuation and unbalanced closing parens from a bare URL."""
    while url:
        if url[-1] in TRAILING_PUNCTUATION:
            url = url[:-1]
        elif url[-1] == ")" and url.count(")") > url.count("("):
            url = url[:-1]
        else:
            break
    return url


def scan_urls(text: str) -> list[str]:
    """Return the distinct URLs in ``text`` in order of first appearance.

    Both markdown link targets and bare ``http(s)://`` tokens are collected;
    a URL appearing in both forms is returned once. Deduplication is by exact
    string.
    """
    found: list[tuple[int, str]] = []
    link_spans: list[tuple[int, int]] = []

    for match in MARKDOWN_LINK_RE.finditer(text):
        link_spans.append(match.span())
        target = match.group(2)
        if URL_SCHEME_RE.match(target):
            found.append((match.start(2), target))

    for match in BARE_URL_RE.finditer(text):
        # A markdown link is one reference, its label and target included.
        if any(start <= match.start() < end for start, end in link_spans):
            continue
        url = trim_bare_url(match.group(0))
        if URL_SCHEME_RE.match(url) and len(url) > len("https://"):
            found.append((match.start(), url))

    urls: list[str] = []
    seen: set[str] = set()
    for _, url in sorted(found, key=lambda item: item[0]):
        if url not in seen:
            seen.add(url)
            urls.append(url)
    return urls


def extract_url_context(text: str, url: str, context_chars: int = 500) -> str:
    """Return the text surrounding the first occurrence of ``url``."""
    index = text.find(url)
    if index == -1:
        return ""

    start = max(0, index - context_chars)
    end = min(len(text), index + len(url) + context_chars)
    return text[start:end]
