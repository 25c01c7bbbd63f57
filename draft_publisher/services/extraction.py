"""Metadata extraction for resource references.

An extractor turns a batch of {url, type, context} items into component
parameters. The response is validated as a whole: one bad item rejects the
batch. Only an unreachable service degrades to empty metadata.
"""

import json
from abc import ABC, abstractmethod
from typing import Any

from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI, RateLimitError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from draft_publisher.core.config import Settings, settings as default_settings
from draft_publisher.core.exceptions import (
    ExtractionUnavailableError,
    ExtractionValidationError,
    ItemValidationError,
)
from draft_publisher.core.logging import get_logger
from draft_publisher.core.schemas import (
    PARAMS_BY_KIND,
    LinkIcon,
    MetadataItem,
    ResourceKind,
    ResourceReference,
)

logger = get_logger(__name__)


# field -> (required, max words)
WORD_LIMITS: dict[ResourceKind, dict[str, tuple[bool, int | None]]] = {
    ResourceKind.IMAGE: {"alt": (True, 15), "caption": (False, 25)},
    ResourceKind.VIDEO: {"caption": (False, 25), "poster": (False, None)},
    ResourceKind.DOCUMENT: {"title": (True, 8), "description": (True, 30)},
    ResourceKind.LINK: {"title": (False, 8), "description": (False, 30)},
}


EXTRACTION_PROMPT = """You write accessible, factual metadata for media embedded in police accountability documentation.

For each item below you get the URL, its detected type and the text surrounding it in the author's notes.
Use the context to describe what the resource shows. Do not invent names, dates or places that the context does not mention.

Items:
{items}

Return a JSON object with the following structure:
{{
    "items": [
        {{
            "url": "the item url, unchanged",
            "type": "image|video|document|link",
            "params": {{}},
            "confidence": "number 0-1"
        }}
    ]
}}

params per type:
- image: {{"alt": "required, at most 15 words", "caption": "optional, at most 25 words"}}
- video: {{"caption": "optional, at most 25 words"}}
- document: {{"title": "required, at most 8 words", "description": "required, at most 30 words"}}
- link: {{"title": "optional, at most 8 words", "description": "optional, at most 30 words", "icon": "video|news|generic"}}

Return exactly one item per input url. Keep the detected type unless the context makes clear it is wrong.
"""


def count_words(text: str) -> int:
    return len(text.split())


class MetadataExtractor(ABC):
    """Text-understanding service that describes resources from context."""

    @abstractmethod
    async def extract(self, references: list[ResourceReference]) -> Any:
        """Return the raw response items for ``references``.

        Raises:
            ExtractionUnavailableError: if the service cannot be reached
        """

    async def close(self) -> None:
        pass


class OpenAIMetadataExtractor(MetadataExtractor):
    """Extract component metadata with an OpenAI chat model."""

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            if not self.config.openai_api_key:
                raise ExtractionUnavailableError("OpenAI API key not configured")
            self._client = AsyncOpenAI(
                api_key=self.config.openai_api_key,
                timeout=self.config.http_timeout_seconds,
            )
        return self._client

    @staticmethod
    def build_prompt(references: list[ResourceReference]) -> str:
        items = [
            {"url": ref.source_url, "type": ref.kind.value, "context": ref.context}
            for ref in references
        ]
        return EXTRACTION_PROMPT.format(items=json.dumps(items, indent=2, ensure_ascii=False))

    @retry(
        retry=retry_if_exception_type((APIConnectionError, APITimeoutError, RateLimitError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        reraise=True,
    )
    async def _call_llm(self, prompt: str) -> str:
        """Call LLM to extract metadata."""
        client = self._get_client()

        response = await client.chat.completions.create(
            model=self.config.openai_model,
            messages=[
                {
                    "role": "system",
                    "content": "You describe media for accessible web publishing. Always respond with valid JSON.",
                },
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
            max_tokens=4000,
        )
        return response.choices[0].message.content or ""

    async def extract(self, references: list[ResourceReference]) -> Any:
        if not self.config.enable_llm_extraction:
            raise ExtractionUnavailableError("LLM extraction disabled")

        try:
            content = await self._call_llm(self.build_prompt(references))
        except APIError as e:
            raise ExtractionUnavailableError(f"OpenAI request failed: {e}") from e

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ExtractionValidationError([], f"Extraction response is not valid JSON ({e})") from e

        if isinstance(data, dict) and "items" in data:
            return data["items"]
        return data

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


def validate_metadata_item(raw: Any) -> list[str]:
    """Check one raw item against the per-type shape and word limits.

    Returns:
        Human-readable problems, empty when the item is valid
    """
    if not isinstance(raw, dict):
        return ["item is not an object"]

    problems: list[str] = []
    url = raw.get("url")
    if url is None or url == "":
        problems.append("url is missing")
    elif not isinstance(url, str):
        problems.append("url must be a string")

    try:
        kind = ResourceKind(raw.get("type"))
    except ValueError:
        problems.append(f"type {raw.get('type')!r} is not one of {[k.value for k in ResourceKind]}")
        kind = None

    confidence = raw.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        problems.append("confidence must be a number")
    elif not 0.0 <= confidence <= 1.0:
        problems.append(f"confidence {confidence} is outside [0, 1]")

    params = raw.get("params")
    if not isinstance(params, dict):
        problems.append("params must be an object")
        return problems
    if kind is None:
        return problems

    for name, (required, max_words) in WORD_LIMITS[kind].items():
        value = params.get(name)
        if value is None or value == "":
            if required:
                problems.append(f"{name} is required")
            continue
        if not isinstance(value, str):
            problems.append(f"{name} must be a string")
            continue
        if max_words is not None and count_words(value) > max_words:
            problems.append(f"{name} has {count_words(value)} words (max {max_words})")

    icon = params.get("icon")
    if kind is ResourceKind.LINK and icon is not None:
        if not isinstance(icon, str) or icon not in {member.value for member in LinkIcon}:
            problems.append(
                f"icon {icon!r} is not one of {[member.value for member in LinkIcon]}"
            )

    return problems


def validate_metadata_batch(
    raw_items: Any,
    references: list[ResourceReference],
) -> list[MetadataItem]:
    """Validate a whole extraction response against the requested references.

    Returns:
        One item per reference, in reference order

    Raises:
        ExtractionValidationError: listing every offending item
    """
    if not isinstance(raw_items, list):
        raise ExtractionValidationError(
            [], f"Extraction response must be a list of items, got {type(raw_items).__name__}"
        )

    requested = {ref.source_url: ref for ref in references}
    errors: list[ItemValidationError] = []
    items: dict[str, MetadataItem] = {}

    for index, raw in enumerate(raw_items):
        problems = validate_metadata_item(raw)
        raw_url = raw.get("url") if isinstance(raw, dict) else None
        url = raw_url if isinstance(raw_url, str) else ""
        kind = raw.get("type", "?") if isinstance(raw, dict) else "?"

        if url and url not in requested:
            problems.append("url was not part of the request")
        elif url in items:
            problems.append("url appears more than once")

        if problems:
            errors.append(ItemValidationError(index, url or str(raw_url or ""), str(kind), problems))
            continue

        resource_kind = ResourceKind(raw["type"])
        items[url] = MetadataItem(
            url=url,
            type=resource_kind,
            params=PARAMS_BY_KIND[resource_kind].model_validate(raw["params"]),
            confidence=float(raw["confidence"]),
        )

    seen = {error.source_url for error in errors} | set(items)
    for index, ref in enumerate(references):
        if ref.source_url not in seen:
            errors.append(
                ItemValidationError(
                    index,
                    ref.source_url,
                    ref.kind.value,
                    ["missing from extraction response"],
                )
            )

    if errors:
        logger.error(
            "extraction_validation_failed",
            invalid_items=len(errors),
            total_items=len(raw_items),
        )
        raise ExtractionValidationError(errors)

    return [items[ref.source_url] for ref in references]


def apply_metadata(
    references: list[ResourceReference],
    items: list[MetadataItem],
) -> list[ResourceReference]:
    """Attach validated params to their references.

    The extractor may correct a reference's type.
    """
    by_url = {item.url: item for item in items}
    enriched = []
    for ref in references:
        item = by_url[ref.source_url]
        if item.type is not ref.kind:
            logger.info(
                "extraction_reclassified",
                source_url=ref.source_url,
                detected=ref.kind.value,
                extracted=item.type.value,
            )
        enriched.append(ref.with_metadata(item.params, item.confidence, kind=item.type))
    return enriched


async def extract_metadata(
    extractor: MetadataExtractor,
    references: list[ResourceReference],
) -> list[ResourceReference]:
    """Enrich references with extracted metadata.

    Falls back to empty params with confidence 0 when the service is
    unavailable. A malformed response is never softened.
    """
    if not references:
        return []

    try:
        raw_items = await extractor.extract(references)
    except ExtractionUnavailableError as e:
        logger.warning("extraction_unavailable_fallback", error=str(e), items=len(references))
        return [ref.empty_metadata() for ref in references]

    items = validate_metadata_batch(raw_items, references)
    logger.info("metadata_extracted", items=len(items))
    return apply_metadata(references, items)
