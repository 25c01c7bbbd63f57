"""Pipeline orchestrator: one draft in, one published document out."""

import contextlib
from pathlib import Path
from typing import Iterator, Protocol

from draft_publisher.core.config import Settings, settings as default_settings
from draft_publisher.core.exceptions import (
    PersistenceError,
    PipelineError,
    PublishConflictError,
    PublisherError,
    VocabularyError,
)
from draft_publisher.core.logging import get_logger, run_context
from draft_publisher.core.schemas import (
    Draft,
    PipelinePhase,
    PublishResult,
    ResourceKind,
    ResourceReference,
)
from draft_publisher.providers import CloudflareProvider, FileDownloader
from draft_publisher.references import classify_url, extract_url_context, scan_urls

from .article_metadata import (
    ArticleMetadataSource,
    FrontmatterMetadataSource,
    OpenAIArticleMetadataSource,
)
from .assembler import DocumentAssembler
from .documents import DraftStore, PublishedStore, slugify
from .extraction import MetadataExtractor, OpenAIMetadataExtractor, extract_metadata
from .library import ResourceLibrary
from .uploads import UploadOrchestrator
from .vocabulary import VocabularyRegistry

logger = get_logger(__name__)


class Checkpoint(Protocol):
    """Human decisions the pipeline blocks on."""

    def confirm_overwrite(self, path: Path) -> bool:
        ...

    def confirm_new_values(self, list_name: str, values: list[str]) -> bool:
        ...


class AutoCheckpoint:
    """Answers every checkpoint with a fixed decision."""

    def __init__(self, answer: bool = False):
        self.answer = answer

    def confirm_overwrite(self, path: Path) -> bool:
        return self.answer

    def confirm_new_values(self, list_name: str, values: list[str]) -> bool:
        return self.answer


def build_references(
    draft: Draft,
    urls: list[str],
    context_chars: int,
) -> list[ResourceReference]:
    """Classify scanned URLs and attach their surrounding text."""
    return [
        ResourceReference(
            source_url=url,
            kind=classify_url(url),
            context=extract_url_context(draft.body, url, context_chars),
        )
        for url in urls
    ]


class Publisher:
    """Run the load, scan, classify, extract, upload, assemble and commit phases.

    Phases run strictly in order. Any failure aborts the run with a
    ``PipelineError`` naming the phase; nothing is written before commit, and
    the draft is only archived after the document is written.
    """

    def __init__(
        self,
        drafts: DraftStore,
        published: PublishedStore,
        library: ResourceLibrary,
        vocabulary: VocabularyRegistry,
        uploads: UploadOrchestrator,
        extractor: MetadataExtractor,
        article_source: ArticleMetadataSource,
        assembler: DocumentAssembler | None = None,
        checkpoint: Checkpoint | None = None,
        config: Settings | None = None,
    ):
        self.drafts = drafts
        self.published = published
        self.library = library
        self.vocabulary = vocabulary
        self.uploads = uploads
        self.extractor = extractor
        self.article_source = article_source
        self.assembler = assembler or DocumentAssembler()
        self.checkpoint = checkpoint or AutoCheckpoint(False)
        self.config = config or default_settings

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        article_metadata: str = "frontmatter",
        checkpoint: Checkpoint | None = None,
    ) -> "Publisher":
        """Wire the default stores, Cloudflare provider and OpenAI extractor."""
        config = config or default_settings
        library = ResourceLibrary(config.resolve(config.library_path))
        article_source: ArticleMetadataSource
        if article_metadata == "openai":
            article_source = OpenAIArticleMetadataSource(config)
        else:
            article_source = FrontmatterMetadataSource()

        return cls(
            drafts=DraftStore(config.resolve(config.drafts_dir)),
            published=PublishedStore(config.resolve(config.content_dir)),
            library=library,
            vocabulary=VocabularyRegistry(config.resolve(config.registry_path)),
            uploads=UploadOrchestrator(
                library,
                CloudflareProvider(config),
                FileDownloader(config.http_timeout_seconds),
                config.resolve(config.temp_dir),
            ),
            extractor=OpenAIMetadataExtractor(config),
            article_source=article_source,
            checkpoint=checkpoint,
            config=config,
        )

    @contextlib.contextmanager
    def _phase(self, phase: PipelinePhase) -> Iterator[None]:
        logger.info("phase_started", phase=phase.value)
        try:
            yield
        except PipelineError:
            raise
        except PublisherError as e:
            logger.error("phase_failed", phase=phase.value, error=str(e))
            raise PipelineError(phase, e) from e

    async def publish(self, path: Path) -> PublishResult:
        """Publish one draft.

        Raises:
            PipelineError: wrapping the failure of the phase that aborted
        """
        with run_context(path):
            return await self._run(Path(path))

    async def _run(self, path: Path) -> PublishResult:
        with self._phase(PipelinePhase.LOAD):
            draft = self.drafts.load(path)
            self.article_source.check_draft(draft)

        with self._phase(PipelinePhase.SCAN):
            urls = scan_urls(draft.body)
            logger.info("urls_found", count=len(urls))

        with self._phase(PipelinePhase.CLASSIFY):
            references = build_references(draft, urls, self.config.extraction_context_chars)
            logger.info(
                "references_classified",
                **{kind.value: sum(1 for ref in references if ref.kind is kind) for kind in ResourceKind},
            )

        with self._phase(PipelinePhase.EXTRACT):
            references = await extract_metadata(self.extractor, references)

        with self._phase(PipelinePhase.UPLOAD):
            resolved = await self.uploads.resolve_all(
                [ref for ref in references if ref.kind.is_media],
                self.config.max_concurrent_uploads,
            )
            links = [ref for ref in references if ref.kind is ResourceKind.LINK]

        with self._phase(PipelinePhase.ASSEMBLE):
            metadata = await self.article_source.describe(draft, resolved, links, self.vocabulary)
            metadata, unknown = self.vocabulary.normalize_metadata(metadata, draft.kind)
            for list_name, values in unknown.items():
                if not self.checkpoint.confirm_new_values(list_name, values):
                    raise VocabularyError(list_name, values)

            content = self.assembler.assemble(draft, resolved, links, metadata)
            target = self.published.path_for(draft.kind, slugify(metadata.title))

        with self._phase(PipelinePhase.COMMIT):
            overwrite = False
            if self.published.exists(target):
                if not self.checkpoint.confirm_overwrite(target):
                    raise PublishConflictError(target)
                overwrite = True

            try:
                document_path = self.published.write(target, content, overwrite=overwrite)
            except OSError as e:
                raise PersistenceError(f"cannot write published document ({e})", target) from e

            for list_name, values in unknown.items():
                for value in values:
                    self.vocabulary.add_canonical(value, list_name)

            try:
                archived = self.drafts.archive(draft)
            except OSError as e:
                raise PersistenceError(f"cannot archive draft ({e})", draft.path) from e

        result = PublishResult(
            document_path=document_path,
            archived_draft_path=archived,
            new_uploads=sum(1 for item in resolved if not item.reused),
            reused=sum(1 for item in resolved if item.reused),
            links=len(links),
            asset_ids=[item.entry_id for item in resolved],
        )
        logger.info(
            "draft_published",
            document=str(result.document_path),
            new_uploads=result.new_uploads,
            reused=result.reused,
            links=result.links,
        )
        return result

    async def close(self) -> None:
        await self.uploads.close()
        await self.extractor.close()
        await self.article_source.close()
