"""Canonicalization of oracle-produced stories."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from mundus.errors import OracleSchemaError
from mundus.schemas.digest import (
    BatchResult,
    CandidateStory,
    StoryCategory,
    StoryPriority,
    StorySource,
)

MAX_PARAGRAPHS = 3
VALID_CATEGORIES = {c.value for c in StoryCategory}
VALID_PRIORITIES = {p.value for p in StoryPriority}
LEGACY_TEXT_FIELDS = ("summary", "content")


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def coerce_source(raw: Mapping[str, Any]) -> StorySource:
    """Accept ``source`` as a string or an object and return ``{name, url}``."""
    source = raw.get("source")
    fallback_url = _text(raw.get("url"))
    if isinstance(source, Mapping):
        name = _text(source.get("name")) or _text(raw.get("source_name"))
        url = _text(source.get("url")) or fallback_url
    else:
        name = _text(source) or _text(raw.get("source_name"))
        url = fallback_url
    return StorySource(name=name or "Unknown Source", url=url)


def coerce_paragraphs(raw: Mapping[str, Any]) -> list[str]:
    paragraphs = raw.get("paragraphs")
    if isinstance(paragraphs, str):
        paragraphs = [paragraphs]
    if isinstance(paragraphs, (list, tuple)):
        cleaned = [_text(p) for p in paragraphs]
        return [p for p in cleaned if p][:MAX_PARAGRAPHS]
    for field in LEGACY_TEXT_FIELDS:
        text = _text(raw.get(field))
        if text:
            return [text]
    return []


def coerce_relevance(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return max(0, min(10, round(number)))


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1", "continued"}
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _coerce_enum(value: Any, valid: set[str], default: str) -> str:
    text = _text(value).lower()
    return text if text in valid else default


def normalize_story(raw: Mapping[str, Any]) -> CandidateStory:
    """Build a canonical story, defaulting bad fields instead of rejecting.

    Missing paragraphs become an empty list and an unknown priority becomes
    ``b_side`` so a half-formed story never lands in the main tier.
    """
    article_id = _text(raw.get("article_id"))
    return CandidateStory(
        title=_text(raw.get("title")) or "Untitled",
        source=coerce_source(raw),
        relevance_score=coerce_relevance(raw.get("relevance_score")),
        category=_coerce_enum(raw.get("category"), VALID_CATEGORIES, StoryCategory.NEWS.value),
        priority=_coerce_enum(raw.get("priority"), VALID_PRIORITIES, StoryPriority.B_SIDE.value),
        paragraphs=coerce_paragraphs(raw),
        continued_from_previous=_coerce_flag(raw.get("continued_from_previous")),
        article_id=article_id or None,
    )


def _required_count(data: Mapping[str, Any], key: str, batch_index: int) -> int:
    if key not in data:
        raise OracleSchemaError(
            f"Batch {batch_index} response is missing '{key}'",
            details={"batch": batch_index},
        )
    value = data[key]
    if isinstance(value, bool):
        value = None
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        count = -1
    if count < 0 or (isinstance(value, float) and not value.is_integer()):
        raise OracleSchemaError(
            f"Batch {batch_index} '{key}' must be a non-negative integer, got {value!r}",
            details={"batch": batch_index},
        )
    return count


def parse_batch_payload(data: Any, batch_index: int) -> BatchResult:
    """Validate the container object returned for one batch.

    The container is strict: anything other than an object with a
    ``filtered_articles`` array and the two counters raises
    ``OracleSchemaError``. Individual stories are normalized leniently.
    """
    if not isinstance(data, Mapping):
        raise OracleSchemaError(
            f"Batch {batch_index} response must be an object",
            details={"batch": batch_index},
        )
    articles = data.get("filtered_articles")
    if not isinstance(articles, list):
        raise OracleSchemaError(
            f"Batch {batch_index} response has no 'filtered_articles' array",
            details={"batch": batch_index},
        )
    stories = []
    for i, item in enumerate(articles):
        if not isinstance(item, Mapping):
            raise OracleSchemaError(
                f"Batch {batch_index} story {i} is not an object",
                details={"batch": batch_index, "story": i},
            )
        stories.append(normalize_story(item))

    return BatchResult(
        batch_index=batch_index,
        stories=stories,
        skipped=_required_count(data, "skipped_count", batch_index),
        duplicates=_required_count(data, "duplicate_count", batch_index),
    )
