"""Draft and published document stores on the local filesystem."""

import re
from pathlib import Path
from typing import Any, Iterator

import yaml

from draft_publisher.core.config import settings
from draft_publisher.core.exceptions import DraftInputError, PublishConflictError
from draft_publisher.core.logging import get_logger
from draft_publisher.core.schemas import DocumentKind, Draft
from draft_publisher.core.storage import atomic_write_text

logger = get_logger(__name__)

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
ARCHIVE_FOLDER = "published"
SLUG_RE = re.compile(r"[^a-z0-9]+")


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a document into its YAML header and body.

    Documents without a header return an empty dict and the whole text.

    Raises:
        ValueError: if the header is not a YAML mapping
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text

    try:
        header = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise ValueError(f"invalid YAML frontmatter: {e}") from e

    if header is None:
        header = {}
    if not isinstance(header, dict):
        raise ValueError("frontmatter is not a mapping")
    return header, text[match.end():]


def render_frontmatter(header: dict[str, Any]) -> str:
    dumped = yaml.safe_dump(
        header,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=1000,
    )
    return f"---\n{dumped}---\n"


def slugify(title: str) -> str:
    return SLUG_RE.sub("-", title.lower()).strip("-") or "untitled"


class DraftStore:
    """Pending drafts partitioned by document kind.

    ``drafts/cases/*.md`` and ``drafts/posts/*.md`` are pending; a published
    draft moves to ``drafts/published/<folder>/``.
    """

    def __init__(self, root: Path | None = None):
        self.root = root or settings.resolve(settings.drafts_dir)

    def list(self) -> list[Path]:
        """List pending drafts, cases first."""
        files: list[Path] = []
        for kind in DocumentKind:
            folder = self.root / kind.folder
            if folder.is_dir():
                files.extend(sorted(p for p in folder.glob("*.md") if p.is_file()))
        return files

    def kind_of(self, path: Path) -> DocumentKind:
        """Determine the document kind from the containing folder."""
        try:
            return DocumentKind.from_folder(path.parent.name)
        except ValueError:
            raise DraftInputError(
                f"drafts must live in one of {[k.folder for k in DocumentKind]}",
                path,
            ) from None

    def read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise DraftInputError(f"cannot read draft ({e})", path) from e

    def load(self, path: Path) -> Draft:
        """Read a draft and tag it with its kind.

        Raises:
            DraftInputError: if the draft is unreadable, malformed or empty
        """
        path = Path(path)
        kind = self.kind_of(path)
        text = self.read(path)

        try:
            header, body = split_frontmatter(text)
        except ValueError as e:
            raise DraftInputError(str(e), path) from e

        if not body.strip():
            raise DraftInputError("draft has no body text", path)

        return Draft(path=path, kind=kind, text=text, body=body, frontmatter=header)

    def archive_path(self, draft: Draft) -> Path:
        return self.root / ARCHIVE_FOLDER / draft.kind.folder / draft.name

    def rename(self, path: Path, new_path: Path) -> Path:
        new_path.parent.mkdir(parents=True, exist_ok=True)
        path.replace(new_path)
        return new_path

    def archive(self, draft: Draft) -> Path:
        """Move a consumed draft into the archive namespace."""
        target = self.archive_path(draft)
        if target.exists():
            target = target.with_name(f"{target.stem}-{draft.path.stat().st_mtime_ns}{target.suffix}")
        self.rename(draft.path, target)
        logger.info("draft_archived", draft=str(draft.path), archived=str(target))
        return target


class PublishedStore:
    """Published documents, one folder per document kind."""

    def __init__(self, root: Path | None = None):
        self.root = root or settings.resolve(settings.content_dir)

    def path_for(self, kind: DocumentKind, slug: str) -> Path:
        return self.root / kind.folder / f"{slug}.mdx"

    def exists(self, path: Path) -> bool:
        return path.exists()

    def write(self, path: Path, content: str, overwrite: bool = False) -> Path:
        """Write a published document.

        Raises:
            PublishConflictError: if the file exists and overwrite is False
        """
        if path.exists() and not overwrite:
            raise PublishConflictError(path)
        atomic_write_text(path, content)
        logger.info("document_written", path=str(path), overwrite=overwrite)
        return path

    def iter_documents(self) -> Iterator[tuple[DocumentKind, Path]]:
        for kind in DocumentKind:
            folder = self.root / kind.folder
            if folder.is_dir():
                for path in sorted(folder.glob("*.md*")):
                    if path.suffix in (".md", ".mdx"):
                        yield kind, path

    def read_header(self, path: Path) -> dict[str, Any]:
        """Parse the frontmatter of a published document.

        Raises:
            ValueError: if the file has no valid header
        """
        text = path.read_text(encoding="utf-8")
        header, _ = split_frontmatter(text)
        if not header:
            raise ValueError("missing frontmatter")
        return header
