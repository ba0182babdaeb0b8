"""Candidate document normalization."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from mundus.errors import EmptyPoolError
from mundus.schemas.digest import CandidateDocument, RecipientProfile, TopicProfile

logger = logging.getLogger(__name__)

BODY_FIELDS = ("summary", "content", "text", "description")


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list, tuple, set)):
        return ""
    return str(value).strip()


def _to_string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    text = str(value).strip()
    return [text] if text else []


def _first_text(raw: Mapping[str, Any], fields: tuple[str, ...]) -> str:
    for name in fields:
        text = _clean_text(raw.get(name))
        if text:
            return text
    return ""


def _parse_published_at(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    text = _clean_text(value)
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _source_name(raw: Mapping[str, Any]) -> str:
    name = _clean_text(raw.get("source_name"))
    if name:
        return name
    source = raw.get("source")
    if isinstance(source, Mapping):
        name = _clean_text(source.get("name"))
    else:
        name = _clean_text(source)
    return name or "Unknown"


def _source_url(raw: Mapping[str, Any]) -> str | None:
    url = _clean_text(raw.get("url")) or _clean_text(raw.get("link"))
    if not url:
        source = raw.get("source")
        if isinstance(source, Mapping):
            url = _clean_text(source.get("url"))
    return url or None


def is_valid_document(raw: Any) -> bool:
    """A document is usable when it carries a title or some body text."""
    if not isinstance(raw, Mapping):
        return False
    return bool(_clean_text(raw.get("title")) or _first_text(raw, BODY_FIELDS))


def normalize_document(raw: Mapping[str, Any], position: int) -> CandidateDocument:
    doc_id = _clean_text(raw.get("article_id")) or _clean_text(raw.get("id")) or f"article_{position}"
    return CandidateDocument(
        id=doc_id,
        title=_clean_text(raw.get("title")),
        body=_first_text(raw, BODY_FIELDS),
        source_name=_source_name(raw),
        url=_source_url(raw),
        category=_clean_text(raw.get("category")),
        country=_clean_text(raw.get("country")) or _clean_text(raw.get("locale")),
        published_at=_parse_published_at(raw.get("published_at") or raw.get("publishedAt")),
    )


def normalize_documents(raw_documents: list[Any]) -> list[CandidateDocument]:
    """Coerce caller input into canonical documents, dropping unusable items.

    Ids are made unique within the pool so that oracle selections map back to
    exactly one document.

    Raises:
        EmptyPoolError: If no document survives validation.
    """
    documents: list[CandidateDocument] = []
    seen_ids: set[str] = set()
    for position, raw in enumerate(raw_documents or [], 1):
        if not is_valid_document(raw):
            continue
        doc = normalize_document(raw, position)
        if doc.id in seen_ids:
            unique_id = f"{doc.id}#{position}"
            logger.warning("Duplicate document id %s renamed to %s", doc.id, unique_id)
            doc = doc.model_copy(update={"id": unique_id})
        seen_ids.add(doc.id)
        documents.append(doc)

    dropped = len(raw_documents or []) - len(documents)
    if dropped:
        logger.info("Dropped %d invalid documents", dropped)
    if not documents:
        raise EmptyPoolError(
            "No valid articles provided",
            details={"received": len(raw_documents or [])},
        )
    return documents


def build_topic_profile(
    context: Mapping[str, Any] | None,
    recipient: RecipientProfile | None = None,
) -> TopicProfile:
    """Resolve the topic profile, request context first, stored preferences second."""
    ctx = context or {}
    prefs = recipient.preferences if recipient is not None else {}

    def pick(name: str) -> Any:
        value = ctx.get(name)
        if value in (None, "", [], ()):
            value = prefs.get(name)
        return value

    language = _clean_text(pick("language")).lower() or "en"
    return TopicProfile(
        topics=_to_string_list(pick("topics")),
        keywords=_to_string_list(pick("keywords")),
        categories=_to_string_list(pick("categories")),
        language=language,
        brief=_clean_text(pick("brief")) or (recipient.brief if recipient else ""),
        organization=_clean_text(pick("organization")) or (recipient.organization if recipient else ""),
    )
