"""Batch extraction prompt builder and output schema."""

from __future__ import annotations

from typing import Any

from mundus.schemas.digest import (
    Batch,
    CandidateDocument,
    ContinuityContext,
    StoryCategory,
    StoryPriority,
    TopicProfile,
)

EXTRACTION_SCHEMA_NAME = "digest_batch"

EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["filtered_articles", "skipped_count", "duplicate_count"],
    "properties": {
        "filtered_articles": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": [
                    "title",
                    "source",
                    "relevance_score",
                    "category",
                    "priority",
                    "paragraphs",
                    "continued_from_previous",
                    "article_id",
                ],
                "properties": {
                    "title": {"type": "string"},
                    "source": {
                        "type": "object",
                        "additionalProperties": False,
                        "required": ["name", "url"],
                        "properties": {
                            "name": {"type": "string"},
                            "url": {"type": "string"},
                        },
                    },
                    "relevance_score": {"type": "integer", "minimum": 0, "maximum": 10},
                    "category": {"type": "string", "enum": [c.value for c in StoryCategory]},
                    "priority": {"type": "string", "enum": [p.value for p in StoryPriority]},
                    "paragraphs": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 1,
                        "maxItems": 3,
                    },
                    "continued_from_previous": {"type": "boolean"},
                    "article_id": {"type": ["string", "null"]},
                },
            },
        },
        "skipped_count": {"type": "integer", "minimum": 0},
        "duplicate_count": {"type": "integer", "minimum": 0},
    },
}


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def format_documents_for_prompt(
    documents: list[CandidateDocument], content_truncation: int = 1000
) -> str:
    if not documents:
        return ""
    blocks = []
    for i, doc in enumerate(documents, 1):
        block = f"Article {i}: {doc.title or 'Untitled'}\n"
        block += f"ID: {doc.id}\n"
        block += f"Source: {doc.source_name}\n"
        if doc.url:
            block += f"URL: {doc.url}\n"
        if doc.published_at:
            block += f"Published: {doc.published_at.isoformat()}\n"
        if doc.category:
            block += f"Category: {doc.category}\n"
        if doc.body:
            block += f"\nContent:\n{_truncate(doc.body, content_truncation)}\n"
        block += "\n---\n"
        blocks.append(block)
    return "\n".join(blocks)


def format_continuity(continuity: ContinuityContext) -> str:
    text = "=== PREVIOUS DIGEST CONTEXT ===\n"
    text += f"Generated: {continuity.created_at or 'unknown'}\n"
    text += f"Articles covered: {continuity.article_count}\n\n"
    if continuity.main_titles:
        text += "Main stories from last digest:\n"
        for title in continuity.main_titles:
            text += f"- {title}\n"
    text += "\nINSTRUCTIONS FOR THIS BATCH:\n"
    text += "- SKIP articles already covered in the previous digest and count them as duplicates\n"
    text += "- Set continued_from_previous to true for stories that develop previous coverage\n"
    text += "- Reference previous context when relevant\n"
    text += "- Focus on NEW developments\n\n"
    return text


def build_extraction_prompt(
    batch: Batch,
    recipient_name: str,
    profile: TopicProfile,
    continuity: ContinuityContext | None = None,
    country: str | None = None,
    content_truncation: int = 1000,
) -> str:
    prompt = f"BATCH {batch.index}/{batch.total}: Analyzing {batch.size} articles for {recipient_name}\n\n"

    prompt += "=== CLIENT PROFILE ===\n"
    if profile.organization:
        prompt += f"Organization: {profile.organization}\n"
    if profile.brief:
        prompt += f"Brief: {profile.brief}\n"
    prompt += f"Topics: {', '.join(profile.topics) or 'General news'}\n"
    if profile.keywords:
        prompt += f"Keywords to weight up: {', '.join(profile.keywords)}\n"
    if profile.categories:
        prompt += f"Source categories: {', '.join(profile.categories)}\n"
    if country:
        prompt += f"Country focus: {country}\n"
    prompt += f"Output language: {profile.language}\n\n"

    if continuity is not None:
        prompt += format_continuity(continuity)

    prompt += f"=== ARTICLES IN THIS BATCH ({batch.size}) ===\n\n"
    prompt += format_documents_for_prompt(batch.documents, content_truncation)

    prompt += "\n\n=== TASK ===\n"
    prompt += "Return a JSON object with:\n"
    prompt += "- filtered_articles: the relevant stories, each with title, source {name, url},\n"
    prompt += "  relevance_score (integer 0-10), category (news|business|politics|eu_relations),\n"
    prompt += "  priority (main|b_side), paragraphs (1-3 paragraph strings),\n"
    prompt += "  continued_from_previous (boolean) and article_id (the ID shown above)\n"
    prompt += "- skipped_count: articles left out as irrelevant\n"
    prompt += "- duplicate_count: articles left out as already covered or repeated in this batch\n\n"
    prompt += "Every article in this batch must be accounted for exactly once: either as a story,\n"
    prompt += "as skipped, or as a duplicate.\n"
    prompt += "Split summaries into logical paragraphs for readability."
    return prompt
