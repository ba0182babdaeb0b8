"""Relevance pre-filter stage - semantic topic filtering of large pools."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any

from mundus.errors import DegradedFilterWarning
from mundus.schemas.digest import CandidateDocument, TopicProfile
from mundus.services.llm_client import LLMClient, generate_with_validation
from mundus.services.pipeline_settings import PreFilterSettings

from digest_pipeline.prompts.prefilter import build_prefilter_prompt

logger = logging.getLogger(__name__)

PREFILTER_SLOT = "prefilter"
REASON_MAX_CHARS = 150


@dataclass(frozen=True)
class PreFilterResult:
    documents: list[CandidateDocument]
    applied: bool
    degraded: bool = False
    reason: str | None = None
    excluded_count: int | None = None


def should_prefilter(pool_size: int, profile: TopicProfile, threshold: int) -> bool:
    return bool(profile.topics) and pool_size > threshold


def coerce_score(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return max(0, min(10, round(number)))


def _safe_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return max(count, 0)


def _validate_selection(data: Any) -> None:
    if not isinstance(data, dict):
        raise ValueError("Expected JSON object")
    selections = data.get("filtered_articles")
    if not isinstance(selections, list):
        raise ValueError("filtered_articles must be an array")
    for i, item in enumerate(selections):
        if not isinstance(item, dict) or "article_id" not in item:
            raise ValueError(f"Selection {i} invalid")


def apply_selection(
    documents: list[CandidateDocument],
    data: dict[str, Any],
    target_count: int,
    min_score: int,
) -> list[CandidateDocument]:
    """Map oracle selections back to documents as annotated copies.

    Unknown ids, repeated ids and scores below ``min_score`` are dropped.
    The result is ranked by score with ties kept in pool order.
    """
    positions = {doc.id: i for i, doc in enumerate(documents)}
    chosen: dict[str, tuple[int, str]] = {}
    for item in data.get("filtered_articles", []):
        doc_id = str(item.get("article_id", "")).strip()
        if doc_id not in positions or doc_id in chosen:
            continue
        score = coerce_score(item.get("relevance_score"))
        if score is None or score < min_score:
            continue
        reason = str(item.get("relevance_reason") or "").strip()[:REASON_MAX_CHARS]
        chosen[doc_id] = (score, reason)

    annotated = [
        documents[positions[doc_id]].model_copy(
            update={"pre_filter_score": score, "pre_filter_reason": reason}
        )
        for doc_id, (score, reason) in chosen.items()
    ]
    annotated.sort(key=lambda doc: (-(doc.pre_filter_score or 0), positions[doc.id]))
    return annotated[:target_count]


async def run_prefilter_stage(
    client: LLMClient,
    documents: list[CandidateDocument],
    profile: TopicProfile,
    recipient_name: str,
    settings: PreFilterSettings | None = None,
) -> PreFilterResult:
    ps = settings or PreFilterSettings()
    target_count = ps.target_count

    if not should_prefilter(len(documents), profile, ps.threshold):
        logger.info(
            "Skipping pre-filter (topics=%d, pool=%d, threshold=%d)",
            len(profile.topics),
            len(documents),
            ps.threshold,
        )
        return PreFilterResult(documents=documents[:target_count], applied=False)

    logger.info(
        "Pre-filter: %d articles -> %d target, topics=%s, categories=%s",
        len(documents),
        target_count,
        ", ".join(profile.topics),
        ", ".join(profile.categories) or "all",
    )
    start = time.monotonic()
    prompt = build_prefilter_prompt(
        documents,
        profile,
        recipient_name,
        target_count=target_count,
        min_score=ps.min_score,
        summary_truncation=ps.summary_truncation,
    )
    try:
        data = await generate_with_validation(
            client,
            PREFILTER_SLOT,
            [{"role": "user", "content": prompt}],
            _validate_selection,
            temperature=ps.temperature,
            max_tokens=ps.max_tokens,
            repair_retry=ps.repair_retry,
        )
        selected = apply_selection(documents, data, target_count, ps.min_score)
        excluded_count = _safe_count(data.get("excluded_count"))
    except Exception as e:
        warning = DegradedFilterWarning(f"Pre-filter failed, using first {target_count} articles: {e}")
        logger.warning("%s", warning)
        return PreFilterResult(
            documents=documents[:target_count],
            applied=False,
            degraded=True,
            reason=str(e),
        )

    logger.info(
        "Pre-filter selected %d articles in %dms (excluded=%s)",
        len(selected),
        int((time.monotonic() - start) * 1000),
        excluded_count,
    )
    if data.get("filtering_notes"):
        logger.info("Pre-filter notes: %s", data["filtering_notes"])
    return PreFilterResult(
        documents=selected,
        applied=True,
        excluded_count=excluded_count,
    )
