"""Result merge stage - rank, tier and section batch results."""

from __future__ import annotations

import html
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from mundus.schemas.digest import (
    BatchResult,
    CandidateStory,
    ContinuityContext,
    DigestEmail,
    DigestMetadata,
    DigestSections,
    MergedDigest,
    RecipientProfile,
    StoryCategory,
    StoryPriority,
)
from mundus.services.pipeline_settings import MergeSettings

from digest_pipeline.news.stories import normalize_story
from digest_pipeline.news.titles import HeadlineIndex

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE = "The Mundus Team"


def _count(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def coerce_batch_result(item: BatchResult | Mapping[str, Any], position: int) -> BatchResult:
    """Accept a ``BatchResult`` or a loosely shaped mapping of one.

    Mappings may use either the oracle container keys
    (``filtered_articles``/``skipped_count``/``duplicate_count``) or the short
    ones (``articles``/``skipped``/``duplicates``).
    """
    if isinstance(item, BatchResult):
        return item
    stories = item.get("stories", item.get("articles", item.get("filtered_articles")))
    return BatchResult(
        batch_index=_count(item.get("batch_index", position)),
        stories=[
            story if isinstance(story, CandidateStory) else normalize_story(story)
            for story in (stories if isinstance(stories, list) else [])
            if isinstance(story, (CandidateStory, Mapping))
        ],
        skipped=_count(item.get("skipped", item.get("skipped_count"))),
        duplicates=_count(item.get("duplicates", item.get("duplicate_count"))),
    )


def split_sections(stories: list[CandidateStory]) -> DigestSections:
    buckets: dict[str, list[CandidateStory]] = {c.value: [] for c in StoryCategory}
    for story in stories:
        buckets[StoryCategory(story.category).value].append(story)
    return DigestSections(**buckets)


def _dedupe_titles(
    stories: list[CandidateStory], settings: MergeSettings
) -> tuple[list[CandidateStory], int]:
    index = HeadlineIndex(settings)
    kept: list[CandidateStory] = []
    for story in stories:
        original = index.find(story.title)
        if original is not None:
            logger.info("Dropping near-duplicate story: %s (matches %s)", story.title, original)
            continue
        index.add(story.title)
        kept.append(story)
    return kept, len(stories) - len(kept)


def build_email_summary(
    main_stories: list[CandidateStory],
    recipient: RecipientProfile,
    top_n: int = 3,
    signature: str = DEFAULT_SIGNATURE,
) -> DigestEmail:
    top_stories = main_stories[:top_n]
    highlights = [
        f"{story.title}{' (Continued)' if story.continued_from_previous else ''}"
        for story in top_stories
    ]
    items = "\n".join(f"  <li>{html.escape(h)}</li>" for h in highlights)
    body_html = (
        f"<p>Dear {html.escape(recipient.name)},</p>\n"
        "<p>Here are today's key developments:</p>\n"
        f"<ul>\n{items}\n</ul>\n"
        f"<p>Best regards,<br>{html.escape(signature)}</p>"
    )
    top_title = top_stories[0].title if top_stories else "Daily Update"
    return DigestEmail(
        subject=f"{recipient.name} Digest: {top_title}",
        body_html=body_html,
        key_highlights=highlights,
    )


def merge_batch_results(
    batch_results: list[BatchResult | Mapping[str, Any]],
    recipient: RecipientProfile,
    continuity: ContinuityContext | None = None,
    *,
    settings: MergeSettings | None = None,
    generated_at: datetime | None = None,
    signature: str = DEFAULT_SIGNATURE,
) -> MergedDigest:
    """Combine per-batch results into one ranked digest.

    Stories are ranked by relevance with a stable sort, so equal scores keep
    batch order. Each story lands in exactly one tier and one category.
    """
    ms = settings or MergeSettings()
    results = [coerce_batch_result(item, i) for i, item in enumerate(batch_results, 1)]
    logger.info("Merging %d batch results", len(results))

    stories: list[CandidateStory] = []
    skipped = 0
    duplicates = 0
    for result in results:
        stories.extend(result.stories)
        skipped += result.skipped
        duplicates += result.duplicates
    reviewed = len(stories) + skipped + duplicates

    ranked = sorted(stories, key=lambda s: -s.relevance_score)
    if ms.title_dedupe:
        ranked, dropped = _dedupe_titles(ranked, ms)
        duplicates += dropped

    main = [s for s in ranked if s.priority == StoryPriority.MAIN]
    b_side = [s for s in ranked if s.priority == StoryPriority.B_SIDE]
    logger.info(
        "Merged %d stories (%d main, %d b-side), %d skipped, %d duplicates",
        len(ranked),
        len(main),
        len(b_side),
        skipped,
        duplicates,
    )
    if continuity is not None:
        continued = sum(1 for s in ranked if s.continued_from_previous)
        logger.info("%d stories continue the digest of %s", continued, continuity.created_at or "unknown date")

    metadata = DigestMetadata(
        generated_at=generated_at or datetime.now(UTC),
        articles_reviewed=reviewed,
        articles_included=len(ranked),
        main_stories=len(main),
        b_side_stories=len(b_side),
        duplicates_removed=duplicates,
        batches_processed=len(results),
    )
    return MergedDigest(
        metadata=metadata,
        main_stories=main,
        sections=split_sections(main),
        b_side=split_sections(b_side),
        email=build_email_summary(main, recipient, ms.summary_top_stories, signature),
    )
