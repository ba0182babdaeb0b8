"""Batch extraction stage - structured story extraction per batch."""

from __future__ import annotations

import asyncio
import logging
import time

from mundus.errors import OracleSchemaError
from mundus.schemas.digest import (
    Batch,
    BatchResult,
    ContinuityContext,
    RecipientProfile,
    TopicProfile,
)
from mundus.services.llm_client import LLMClient
from mundus.services.pipeline_settings import BatchSettings

from digest_pipeline.news.stories import parse_batch_payload
from digest_pipeline.prompts.extraction import (
    EXTRACTION_SCHEMA,
    EXTRACTION_SCHEMA_NAME,
    build_extraction_prompt,
)

logger = logging.getLogger(__name__)

EXTRACTION_SLOT = "extraction"


async def extract_batch(
    client: LLMClient,
    batch: Batch,
    recipient: RecipientProfile,
    profile: TopicProfile,
    continuity: ContinuityContext | None = None,
    country: str | None = None,
    settings: BatchSettings | None = None,
) -> BatchResult:
    bs = settings or BatchSettings()
    prompt = build_extraction_prompt(
        batch,
        recipient.name,
        profile,
        continuity=continuity,
        country=country,
        content_truncation=bs.content_truncation,
    )
    logger.info("Processing batch %d/%d (%d articles)", batch.index, batch.total, batch.size)
    start = time.monotonic()
    data = await client.generate_structured(
        EXTRACTION_SLOT,
        [{"role": "user", "content": prompt}],
        schema_name=EXTRACTION_SCHEMA_NAME,
        schema=EXTRACTION_SCHEMA,
        temperature=bs.temperature,
        max_tokens=bs.max_tokens,
    )
    try:
        result = parse_batch_payload(data, batch.index)
    except OracleSchemaError as e:
        e.slot = EXTRACTION_SLOT
        logger.warning("Batch %d/%d returned a non-conformant response: %s", batch.index, batch.total, e)
        raise

    if result.reviewed != batch.size:
        logger.info(
            "Batch %d accounting differs from input: %d reviewed vs %d sent",
            batch.index,
            result.reviewed,
            batch.size,
        )
    logger.info(
        "Batch %d/%d complete in %dms: %d stories, %d skipped, %d duplicates",
        batch.index,
        batch.total,
        int((time.monotonic() - start) * 1000),
        len(result.stories),
        result.skipped,
        result.duplicates,
    )
    return result


async def run_extraction_stage(
    client: LLMClient,
    batches: list[Batch],
    recipient: RecipientProfile,
    profile: TopicProfile,
    continuity: ContinuityContext | None = None,
    country: str | None = None,
    settings: BatchSettings | None = None,
    completed: dict[int, BatchResult] | None = None,
) -> list[BatchResult]:
    """Extract every batch, returning results in partition order.

    ``completed`` maps batch index to an already extracted result. Those
    batches are not sent again and each new result is recorded there as
    soon as it arrives, so a failed run can resume where it stopped.
    """
    bs = settings or BatchSettings()
    done = completed if completed is not None else {}
    pending = [batch for batch in batches if batch.index not in done]
    if len(pending) < len(batches):
        logger.info("Reusing %d completed batches", len(batches) - len(pending))

    async def _run(batch: Batch) -> None:
        done[batch.index] = await extract_batch(
            client, batch, recipient, profile, continuity, country, bs
        )

    if bs.concurrency <= 1:
        for batch in pending:
            await _run(batch)
    else:
        semaphore = asyncio.Semaphore(bs.concurrency)

        async def _bounded(batch: Batch) -> None:
            async with semaphore:
                await _run(batch)

        outcomes = await asyncio.gather(*(_bounded(b) for b in pending), return_exceptions=True)
        failures = [o for o in outcomes if isinstance(o, BaseException)]
        if failures:
            logger.warning("%d of %d batches failed", len(failures), len(pending))
            raise failures[0]

    return [done[batch.index] for batch in batches]
