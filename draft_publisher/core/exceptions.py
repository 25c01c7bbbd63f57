"""Exception hierarchy for the publishing pipeline."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .schemas import PipelinePhase, ResourceKind, UploadState


class PublisherError(Exception):
    """Base class for every error raised by the publisher."""


class DraftInputError(PublisherError):
    """Draft is malformed or misses required content."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


@dataclass
class ItemValidationError:
    """Validation failures for one item of an extraction batch."""

    index: int
    source_url: str
    kind: str
    messages: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        lines = [f"Item {self.index + 1} ({self.kind}): {self.source_url}"]
        lines.extend(f"  - {message}" for message in self.messages)
        return "\n".join(lines)


class ExtractionValidationError(PublisherError):
    """The extraction response violated the metadata schema.

    Carries one ``ItemValidationError`` per offending item so the operator can
    see every field and word limit the service got wrong.
    """

    def __init__(self, errors: list[ItemValidationError], message: str | None = None):
        self.errors = errors
        summary = message or f"{len(errors)} item(s) do not match the metadata schema"
        details = "\n".join(str(error) for error in errors)
        super().__init__(f"{summary}\n{details}" if details else summary)


class ExtractionUnavailableError(PublisherError):
    """The extraction service could not be reached at all."""


class UploadError(PublisherError):
    """Fetching or storing a resource failed."""

    def __init__(
        self,
        message: str,
        source_url: str,
        kind: "ResourceKind | None" = None,
        state: "UploadState | None" = None,
    ):
        self.source_url = source_url
        self.kind = kind
        self.state = state
        super().__init__(f"{message} ({source_url})")


class PersistenceError(PublisherError):
    """Reading or writing a persisted JSON document failed."""

    def __init__(self, message: str, path: Path):
        self.path = path
        super().__init__(f"{message}: {path}")


class RegistryRebuildError(PublisherError):
    """A published document could not be parsed during a registry rebuild."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot parse published document {path}: {reason}")


class VocabularyError(PublisherError):
    """A constrained field holds a value that is not canonical."""

    def __init__(self, list_name: str, values: list[str]):
        self.list_name = list_name
        self.values = values
        joined = ", ".join(repr(value) for value in values)
        super().__init__(f"Non-canonical {list_name} value(s) rejected: {joined}")


class PublishConflictError(PublisherError):
    """The target document exists and overwriting was not confirmed."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Published document already exists: {path}")


class PipelineError(PublisherError):
    """A pipeline run aborted in a given phase."""

    def __init__(self, phase: "PipelinePhase", cause: PublisherError):
        self.phase = phase
        self.cause = cause
        super().__init__(f"[{phase.value}] {cause}")
