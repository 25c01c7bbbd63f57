"""Canonical vocabulary registry for constrained metadata fields."""

from datetime import date
from pathlib import Path
from typing import Any, Iterable

from draft_publisher.core.config import settings
from draft_publisher.core.exceptions import RegistryRebuildError
from draft_publisher.core.logging import get_logger
from draft_publisher.core.schemas import ArticleMetadata, DocumentKind
from draft_publisher.core.storage import JsonDocumentStore

from .documents import PublishedStore

logger = get_logger(__name__)

REGISTRY_VERSION = "3.0"

# Hand-maintained enumerations. Rebuild never derives these.
FIXED_LISTS: dict[str, list[str]] = {
    "force_types": [
        "Shooting",
        "Taser",
        "Physical Force",
        "Beating",
        "Chokehold",
        "Restraint",
        "Vehicle Pursuit",
        "K-9 Attack",
        "Chemical Agent",
        "Baton",
    ],
    "threat_levels": [
        "No Threat",
        "Low Threat",
        "Medium Threat",
        "High Threat",
        "Active Threat",
    ],
    "investigation_statuses": [
        "Under Investigation",
        "No Investigation",
        "Charges Filed",
        "No Charges Filed",
        "Convicted",
        "Acquitted",
        "Settled",
        "Disciplined",
        "No Discipline",
    ],
}

DERIVED_LISTS = ("agencies", "counties", "case_tags", "post_tags")

# Constrained frontmatter field -> registry list, per document kind.
FIELD_LISTS: dict[DocumentKind, dict[str, str]] = {
    DocumentKind.CASE: {
        "agencies": "agencies",
        "county": "counties",
        "force_type": "force_types",
        "threat_level": "threat_levels",
        "investigation_status": "investigation_statuses",
        "tags": "case_tags",
    },
    DocumentKind.POST: {
        "agencies": "agencies",
        "tags": "post_tags",
    },
}

PROMPT_LABELS = {
    "agencies": "Agencies",
    "counties": "Counties",
    "force_types": "Force types",
    "threat_levels": "Threat levels",
    "investigation_statuses": "Investigation statuses",
    "case_tags": "Tags",
    "post_tags": "Tags",
}


def empty_registry() -> dict[str, Any]:
    data: dict[str, Any] = {
        "metadata_version": REGISTRY_VERSION,
        "last_updated": date.today().isoformat(),
    }
    for name in DERIVED_LISTS:
        data[name] = {}
    for name, values in FIXED_LISTS.items():
        data[name] = {value: [] for value in values}
    return data


def _as_mapping(raw: Any) -> dict[str, list[str]]:
    """Accept both the list form and the canonical -> aliases form."""
    if isinstance(raw, dict):
        return {str(k): [str(a) for a in (v or [])] for k, v in raw.items()}
    if isinstance(raw, list):
        return {str(value): [] for value in raw}
    return {}


def _as_values(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return [str(item) for item in value if item not in (None, "")]
    return [str(value)]


class VocabularyRegistry:
    """Named lists of canonical values, each with optional aliases."""

    def __init__(self, path: Path | None = None):
        self.path = path or settings.resolve(settings.registry_path)
        self.store = JsonDocumentStore(self.path, empty_registry)

    def list_names(self) -> list[str]:
        return [*DERIVED_LISTS, *FIXED_LISTS]

    def lists(self) -> dict[str, dict[str, list[str]]]:
        """Return every list as a canonical -> aliases mapping."""
        data = self.store.read()
        return {name: _as_mapping(data.get(name)) for name in self.list_names()}

    def canonical_values(self, list_name: str) -> list[str]:
        return list(_as_mapping(self.store.read().get(list_name)))

    def is_canonical(self, value: str, list_name: str) -> bool:
        return value in self.canonical_values(list_name)

    def normalize(self, raw: str, list_name: str) -> str:
        """Map a raw value to its canonical form.

        Tries an exact canonical match, a case-insensitive canonical match,
        then the aliases. Unknown values are returned unchanged.
        """
        if not isinstance(raw, str):
            return raw
        mapping = _as_mapping(self.store.read().get(list_name))
        if raw in mapping:
            return raw

        needle = raw.strip().casefold()
        if not needle:
            return raw
        for canonical in mapping:
            if canonical.casefold() == needle:
                return canonical
        for canonical, aliases in mapping.items():
            if any(alias.strip().casefold() == needle for alias in aliases):
                return canonical
        return raw

    def normalize_many(self, values: Iterable[str], list_name: str) -> list[str]:
        """Normalize a list of values, dropping duplicates produced by aliases."""
        seen: list[str] = []
        for value in values:
            normalized = self.normalize(value, list_name)
            if normalized not in seen:
                seen.append(normalized)
        return seen

    def normalize_metadata(
        self,
        metadata: ArticleMetadata,
        kind: DocumentKind,
    ) -> tuple[ArticleMetadata, dict[str, list[str]]]:
        """Normalize every constrained field of an article's metadata.

        Returns:
            The normalized copy and, per list name, the values that are still
            not canonical
        """
        updates: dict[str, Any] = {}
        unknown: dict[str, list[str]] = {}

        for field_name, list_name in FIELD_LISTS[kind].items():
            if field_name not in type(metadata).model_fields:
                continue
            value = getattr(metadata, field_name)
            if value is None:
                continue

            if isinstance(value, list):
                normalized: Any = self.normalize_many(value, list_name)
                candidates = normalized
            else:
                normalized = self.normalize(value, list_name)
                candidates = [normalized]
            updates[field_name] = normalized

            canonical = set(self.canonical_values(list_name))
            missing = [v for v in candidates if v and v not in canonical]
            if missing:
                unknown.setdefault(list_name, []).extend(missing)

        if unknown:
            logger.info("vocabulary_non_canonical_values", values=unknown)
        return metadata.model_copy(update=updates), unknown

    def add_canonical(
        self,
        value: str,
        list_name: str,
        aliases: Iterable[str] = (),
    ) -> bool:
        """Append a canonical value. Adding an existing value is a no-op.

        Returns:
            True if the value was added
        """
        if list_name not in self.list_names():
            raise KeyError(f"Unknown vocabulary list: {list_name}")
        value = value.strip()
        if not value:
            raise ValueError("Canonical value must not be empty")

        with self.store.transaction() as data:
            mapping = _as_mapping(data.get(list_name))
            if value in mapping:
                return False
            mapping[value] = [alias for alias in aliases if alias and alias != value]
            data[list_name] = dict(sorted(mapping.items(), key=lambda item: item[0].casefold()))
            data["last_updated"] = date.today().isoformat()

        logger.info("vocabulary_value_added", list_name=list_name, value=value)
        return True

    def collect(self, published: PublishedStore) -> dict[str, set[str]]:
        """Collect every derived-list value found in published documents.

        Raises:
            RegistryRebuildError: on the first document that cannot be parsed
        """
        observed: dict[str, set[str]] = {name: set() for name in DERIVED_LISTS}
        for kind, path in published.iter_documents():
            try:
                header = published.read_header(path)
            except (OSError, UnicodeDecodeError, ValueError) as e:
                raise RegistryRebuildError(path, str(e)) from e

            for field_name, list_name in FIELD_LISTS[kind].items():
                if list_name in observed:
                    observed[list_name].update(_as_values(header.get(field_name)))
        return observed

    def rebuild(self, published: PublishedStore | None = None) -> dict[str, int]:
        """Recompute derived lists from the published corpus.

        Aliases of values that are still observed are kept. Fixed lists are
        carried over from the current registry as they are. Nothing is
        written if any document fails to parse.

        Returns:
            Number of canonical values per list
        """
        published = published or PublishedStore()
        observed = self.collect(published)

        with self.store.transaction() as data:
            for list_name, values in observed.items():
                previous = _as_mapping(data.get(list_name))
                data[list_name] = {
                    value: previous.get(value, [])
                    for value in sorted(values, key=str.casefold)
                }
            for list_name, defaults in FIXED_LISTS.items():
                if not _as_mapping(data.get(list_name)):
                    data[list_name] = {value: [] for value in defaults}
            data["metadata_version"] = REGISTRY_VERSION
            data["last_updated"] = date.today().isoformat()
            counts = {name: len(_as_mapping(data[name])) for name in self.list_names()}

        logger.info("vocabulary_rebuilt", path=str(self.path), counts=counts)
        return counts

    def format_for_prompt(self, kind: DocumentKind) -> str:
        """Render the lists relevant to ``kind`` as prompt text."""
        data = self.lists()
        lines = []
        for list_name in dict.fromkeys(FIELD_LISTS[kind].values()):
            values = list(data.get(list_name, {}))
            label = PROMPT_LABELS[list_name]
            lines.append(f"{label}: {', '.join(values) if values else '(none yet)'}")
        return "\n".join(lines)

