"""
Command-line interface for publishing drafts.

Usage:
    draft-publisher publish drafts/cases/jane-doe.md
    draft-publisher library search youtube
    draft-publisher registry rebuild
"""

import asyncio
from pathlib import Path
from typing import Optional

import click

from draft_publisher.core.config import get_settings
from draft_publisher.core.exceptions import PipelineError, PublisherError
from draft_publisher.core.logging import configure_logging
from draft_publisher.core.schemas import PublishResult, ResourceKind
from draft_publisher.services import (
    DraftStore,
    Publisher,
    PublishedStore,
    ResourceLibrary,
    VocabularyRegistry,
)


class ClickCheckpoint:
    """Ask the operator on the terminal."""

    def __init__(self, assume_yes: bool = False):
        self.assume_yes = assume_yes

    def confirm_overwrite(self, path: Path) -> bool:
        if self.assume_yes:
            return True
        return click.confirm(f"{path} already exists. Overwrite?", default=False)

    def confirm_new_values(self, list_name: str, values: list[str]) -> bool:
        if self.assume_yes:
            return True
        click.echo(f"New {list_name} value(s) not in the vocabulary registry:")
        for value in values:
            click.echo(f"  - {value}")
        return click.confirm("Add them as canonical values?", default=False)


def _display_path(path: Path) -> str:
    try:
        return str(path.relative_to(get_settings().project_root))
    except ValueError:
        return str(path)


def _choose_draft(drafts: DraftStore) -> Path:
    pending = drafts.list()
    if not pending:
        raise click.ClickException(f"No pending drafts under {drafts.root}")

    for index, path in enumerate(pending, start=1):
        click.echo(f"  {index}. {path.parent.name}/{path.name}")
    choice = click.prompt(
        "Select a draft",
        type=click.IntRange(1, len(pending)),
    )
    return pending[choice - 1]


def _report(result: PublishResult) -> None:
    click.echo("=" * 60)
    click.echo("Published")
    click.echo("=" * 60)
    click.echo(f"Document:       {_display_path(result.document_path)}")
    click.echo(f"Archived draft: {_display_path(result.archived_draft_path)}")
    click.echo(f"New uploads:    {result.new_uploads}")
    click.echo(f"Reused:         {result.reused}")
    click.echo(f"Links:          {result.links}")


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level: Optional[str]):
    """Publish case and post drafts with deduplicated media."""
    configure_logging(log_level, get_settings())


@cli.command()
@click.argument("draft", required=False, type=click.Path(path_type=Path))
@click.option(
    "--article-metadata",
    type=click.Choice(["frontmatter", "openai"]),
    default="frontmatter",
    show_default=True,
    help="Where the case or post fields come from",
)
@click.option("--yes", "-y", is_flag=True, help="Confirm overwrites and new vocabulary values")
def publish(draft: Optional[Path], article_metadata: str, yes: bool):
    """Publish one draft."""
    config = get_settings()
    publisher = Publisher.from_settings(
        config,
        article_metadata=article_metadata,
        checkpoint=ClickCheckpoint(assume_yes=yes),
    )
    path = draft or _choose_draft(publisher.drafts)

    async def _publish() -> PublishResult:
        try:
            return await publisher.publish(path.resolve())
        finally:
            await publisher.close()

    try:
        result = asyncio.run(_publish())
    except PipelineError as e:
        raise click.ClickException(f"Publishing failed in phase '{e.phase.value}': {e.cause}")
    _report(result)


@cli.command()
def drafts():
    """List pending drafts."""
    store = DraftStore(get_settings().resolve(get_settings().drafts_dir))
    pending = store.list()
    if not pending:
        click.echo("No pending drafts.")
    for path in pending:
        click.echo(f"{path.parent.name}/{path.name}")


@cli.group()
def library():
    """Browse the resource library."""


def _library() -> ResourceLibrary:
    config = get_settings()
    return ResourceLibrary(config.resolve(config.library_path))


@library.command("list")
@click.option(
    "--kind",
    type=click.Choice([kind.value for kind in ResourceKind if kind.is_media]),
    default=None,
)
def library_list(kind: Optional[str]):
    """List library entries, oldest first."""
    try:
        entries = _library().entries(ResourceKind(kind) if kind else None)
    except PublisherError as e:
        raise click.ClickException(str(e))
    for entry in entries:
        click.echo(f"{entry.id}  {entry.added_at:%Y-%m-%d}  {entry.source_url}")
    click.echo(f"{len(entries)} entries")


@library.command("search")
@click.argument("query")
def library_search(query: str):
    """Search entries by id, source URL or provider handle."""
    try:
        entries = _library().search(query)
    except PublisherError as e:
        raise click.ClickException(str(e))
    for entry in entries:
        click.echo(f"{entry.id}  {entry.source_url}")
    if not entries:
        click.echo("No matches.")


@library.command("show")
@click.argument("entry_id")
def library_show(entry_id: str):
    """Show an entry and its embed markup."""
    store = _library()
    try:
        entry = store.get(entry_id)
    except PublisherError as e:
        raise click.ClickException(str(e))
    if entry is None:
        raise click.ClickException(f"No library entry {entry_id}")

    click.echo(f"Id:      {entry.id}")
    click.echo(f"Kind:    {entry.kind.value}")
    click.echo(f"Source:  {entry.source_url}")
    click.echo(f"Added:   {entry.added_at.isoformat()}")
    for name, value in entry.cloudflare.model_dump(by_alias=True).items():
        click.echo(f"{name}: {value}")
    click.echo()
    click.echo(store.embed_snippet(entry_id))


@cli.group()
def registry():
    """Maintain the canonical vocabulary registry."""


def _registry() -> VocabularyRegistry:
    config = get_settings()
    return VocabularyRegistry(config.resolve(config.registry_path))


@registry.command("rebuild")
def registry_rebuild():
    """Recompute derived lists from published documents."""
    config = get_settings()
    try:
        counts = _registry().rebuild(PublishedStore(config.resolve(config.content_dir)))
    except PublisherError as e:
        raise click.ClickException(f"Registry left unchanged. {e}")
    for name, count in counts.items():
        click.echo(f"{name}: {count}")


@registry.command("add")
@click.argument("list_name")
@click.argument("value")
@click.option("--alias", "aliases", multiple=True, help="Alias that normalizes to VALUE")
def registry_add(list_name: str, value: str, aliases: tuple[str, ...]):
    """Add a canonical value to a list."""
    try:
        added = _registry().add_canonical(value, list_name, aliases)
    except (KeyError, ValueError, PublisherError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Added {value!r} to {list_name}" if added else f"{value!r} is already in {list_name}")


@registry.command("normalize")
@click.argument("list_name")
@click.argument("value")
def registry_normalize(list_name: str, value: str):
    """Show the canonical form of a value."""
    vocabulary = _registry()
    if list_name not in vocabulary.list_names():
        raise click.ClickException(f"Unknown list {list_name}; one of {', '.join(vocabulary.list_names())}")
    normalized = vocabulary.normalize(value, list_name)
    suffix = "" if vocabulary.is_canonical(normalized, list_name) else " (not canonical)"
    click.echo(f"{normalized}{suffix}")


if __name__ == "__main__":
    cli()
