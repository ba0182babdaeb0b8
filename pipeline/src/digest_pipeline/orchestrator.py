"""Pipeline orchestrator - curates one digest request end to end."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import pydantic
from mundus.config import get_settings
from mundus.database import get_session
from mundus.errors import DigestError, ValidationError
from mundus.schemas.digest import (
    Batch,
    BatchResult,
    CandidateDocument,
    ContinuityContext,
    DigestEnvelope,
    DigestRequest,
    DigestRunMetadata,
    RecipientProfile,
    TopicProfile,
)
from mundus.services.llm_client import LLMClient, LLMSlotConfig
from mundus.services.pipeline_settings import (
    DigestPipelineSettings,
    RetrySettings,
    load_pipeline_settings,
)
from mundus.services.recipient_store import load_recipient

from digest_pipeline.news.batching import partition_documents
from digest_pipeline.news.continuity import build_continuity_context
from digest_pipeline.news.normalizer import build_topic_profile, normalize_documents
from digest_pipeline.stages.extraction_stage import EXTRACTION_SLOT, run_extraction_stage
from digest_pipeline.stages.merge_stage import merge_batch_results
from digest_pipeline.stages.prefilter_stage import (
    PREFILTER_SLOT,
    PreFilterResult,
    run_prefilter_stage,
)
from digest_pipeline.stages.summary_stage import SUMMARY_SLOT, run_summary_stage

logger = logging.getLogger(__name__)


@dataclass
class DigestRun:
    """Working state for one request, kept across retry attempts.

    Every field past ``attempts`` is filled once and reused, so a retry
    resumes after the last stage or batch that succeeded.
    """

    request: DigestRequest
    started_at: float = field(default_factory=time.monotonic)
    attempts: int = 0
    documents_received: int = 0
    documents: list[CandidateDocument] | None = None
    recipient: RecipientProfile | None = None
    pipeline_settings: DigestPipelineSettings | None = None
    profile: TopicProfile | None = None
    continuity: ContinuityContext | None = None
    prefilter: PreFilterResult | None = None
    batches: list[Batch] | None = None
    completed_batches: dict[int, BatchResult] = field(default_factory=dict)


def _error_lines(error: pydantic.ValidationError, root: str) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc']) or root}: {err['msg']}"
        for err in error.errors()
    ]


def parse_request(payload: DigestRequest | dict[str, Any]) -> DigestRequest:
    if isinstance(payload, DigestRequest):
        return payload
    try:
        return DigestRequest.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid digest request", details={"errors": _error_lines(e, "request")}
        ) from e


def _get_llm_client(pipeline_settings: DigestPipelineSettings) -> LLMClient:
    settings = get_settings()
    client = LLMClient(timeout=settings.oracle_timeout_seconds)
    slot_params = {
        PREFILTER_SLOT: (pipeline_settings.prefilter.temperature, pipeline_settings.prefilter.max_tokens),
        EXTRACTION_SLOT: (pipeline_settings.batch.temperature, pipeline_settings.batch.max_tokens),
        SUMMARY_SLOT: (pipeline_settings.summary.temperature, pipeline_settings.summary.max_tokens),
    }
    for slot, (temperature, max_tokens) in slot_params.items():
        client.configure_slot(LLMSlotConfig(
            slot=slot,
            provider_name=settings.oracle_provider,
            api_endpoint=settings.oracle_api_endpoint,
            model_id=settings.oracle_model,
            api_key=settings.oracle_api_key,
            max_tokens=max_tokens,
            temperature=temperature,
        ))
    return client


async def _load_collaborators(recipient_id: str) -> tuple[RecipientProfile, DigestPipelineSettings]:
    async with get_session() as session:
        recipient = await load_recipient(session, recipient_id)
        try:
            pipeline_settings = await load_pipeline_settings(session, recipient.id)
        except pydantic.ValidationError as e:
            raise ValidationError(
                "Invalid digest settings", details={"errors": _error_lines(e, "settings")}
            ) from e
    return recipient, pipeline_settings


async def run_digest(
    request: DigestRequest | dict[str, Any],
    run: DigestRun | None = None,
) -> DigestEnvelope:
    """Run one attempt of the pipeline.

    Pass the same ``run`` to a later call to resume from its cached state.
    """
    request = parse_request(request)
    run = run or DigestRun(request=request)
    run.attempts += 1

    if run.documents is None:
        run.documents_received = len(request.articles)
        run.documents = normalize_documents(request.articles)
        logger.info("Normalized %d of %d articles", len(run.documents), run.documents_received)

    if run.recipient is None:
        recipient, loaded_settings = await _load_collaborators(request.recipient_id)
        run.recipient = recipient
        if run.pipeline_settings is None:
            run.pipeline_settings = loaded_settings
    ps = run.pipeline_settings or DigestPipelineSettings()
    run.pipeline_settings = ps
    recipient = run.recipient

    if run.profile is None:
        run.profile = build_topic_profile(request.context, recipient)
        run.continuity = build_continuity_context(
            request.last_digest, title_limit=ps.batch.continuity_title_limit
        )
        if run.continuity is not None:
            logger.info(
                "Continuity context: %d titles from %s",
                len(run.continuity.main_titles),
                run.continuity.created_at or "unknown date",
            )

    client = _get_llm_client(ps)
    try:
        if run.prefilter is None:
            run.prefilter = await run_prefilter_stage(
                client, run.documents, run.profile, recipient.name, ps.prefilter
            )
        if run.batches is None:
            run.batches = partition_documents(run.prefilter.documents, ps.batch.batch_size)
            logger.info(
                "Partitioned %d articles into %d batches of up to %d",
                len(run.prefilter.documents),
                len(run.batches),
                ps.batch.batch_size,
            )

        batch_results = await run_extraction_stage(
            client,
            run.batches,
            recipient,
            run.profile,
            run.continuity,
            request.country,
            ps.batch,
            completed=run.completed_batches,
        )
        digest = merge_batch_results(
            batch_results,
            recipient,
            run.continuity,
            settings=ps.merge,
            signature=ps.summary.sender_signature,
        )
        if ps.summary.use_oracle:
            digest = await run_summary_stage(client, digest, recipient, run.profile, ps.summary)
    finally:
        await client.close()

    processing_ms = int((time.monotonic() - run.started_at) * 1000)
    logger.info(
        "Digest for %s complete in %dms: %d stories from %d batches",
        recipient.name,
        processing_ms,
        digest.metadata.articles_included,
        digest.metadata.batches_processed,
    )
    metadata = DigestRunMetadata(
        generated_at=datetime.now(UTC),
        recipient_id=request.recipient_id,
        recipient_name=recipient.name,
        country=request.country,
        has_previous_context=run.continuity is not None,
        processing_time_ms=processing_ms,
        attempts=run.attempts,
        documents_received=run.documents_received,
        documents_valid=len(run.documents),
        documents_processed=len(run.prefilter.documents),
        prefilter_applied=run.prefilter.applied,
        degraded_filter=run.prefilter.degraded,
        degraded_reason=run.prefilter.reason,
    )
    return DigestEnvelope(report=digest, metadata=metadata)


def backoff_delay(attempt: int, retry: RetrySettings) -> float:
    return min(retry.backoff_base_seconds * (2 ** (attempt - 1)), retry.backoff_max_seconds)


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, DigestError):
        return error.retryable
    return True


async def run_digest_with_retry(
    request: DigestRequest | dict[str, Any],
    max_retries: int | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> DigestEnvelope:
    """Run the pipeline with bounded retries and exponential backoff.

    Input and lookup errors are raised at once. Anything else is retried up
    to ``max_retries`` times; completed stages and batches are not repeated.
    The last error is re-raised with ``attempts`` set when it is a
    ``DigestError``.
    """
    request = parse_request(request)
    run = DigestRun(request=request)

    while True:
        try:
            return await run_digest(request, run)
        except Exception as e:
            retry = run.pipeline_settings.retry if run.pipeline_settings else RetrySettings()
            limit = retry.max_retries if max_retries is None else max_retries
            if isinstance(e, DigestError):
                e.attempts = run.attempts
            if not _is_retryable(e) or run.attempts > limit:
                logger.error(
                    "Digest for %s failed after %d attempt(s): %s",
                    request.recipient_id,
                    run.attempts,
                    e,
                )
                raise
            delay = backoff_delay(run.attempts, retry)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                run.attempts,
                limit + 1,
                e,
                delay,
            )
            await sleep(delay)
