"""Continuity context from the previously issued digest."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from mundus.schemas.digest import ContinuityContext

DEFAULT_TITLE_LIMIT = 5


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _story_titles(stories: Any) -> list[str]:
    if not isinstance(stories, list):
        return []
    titles = []
    for story in stories:
        if isinstance(story, Mapping):
            title = str(story.get("title") or "").strip()
        else:
            title = str(story or "").strip()
        if title:
            titles.append(title)
    return titles


def build_continuity_context(
    prior_digest: Mapping[str, Any] | None,
    title_limit: int = DEFAULT_TITLE_LIMIT,
) -> ContinuityContext | None:
    """Condense a prior digest into the reference injected into every batch.

    Accepts either the stored summary shape (``created_at``, ``article_count``,
    ``sections.news``) or a previously returned digest (``report.metadata``,
    ``report.main_stories``).
    """
    if not prior_digest:
        return None

    report = _as_mapping(prior_digest.get("report")) or prior_digest
    metadata = _as_mapping(report.get("metadata"))

    created_at = (
        prior_digest.get("created_at")
        or prior_digest.get("generated_at")
        or metadata.get("generated_at")
        or ""
    )
    article_count = _safe_int(
        prior_digest.get("article_count")
        if prior_digest.get("article_count") is not None
        else metadata.get("articles_included", 0)
    )

    titles = _story_titles(_as_mapping(report.get("sections")).get("news"))
    if not titles:
        titles = _story_titles(report.get("main_stories"))

    return ContinuityContext(
        created_at=str(created_at),
        article_count=max(article_count, 0),
        main_titles=titles[: max(title_limit, 0)],
    )
