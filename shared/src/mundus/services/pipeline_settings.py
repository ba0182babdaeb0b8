"""Digest pipeline settings -- typed Pydantic models backed by the digest_settings table."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from mundus.models.digest_setting import DigestSetting

logger = logging.getLogger(__name__)

KEY_PREFIX = "digest."


class PreFilterSettings(BaseModel):
    # Pool sizes above this trigger the semantic pass (batch_size * 4).
    threshold: int = Field(default=100, ge=1)
    target_count: int = Field(default=100, ge=1)
    min_score: int = Field(default=5, ge=0, le=10)
    summary_truncation: int = 300
    temperature: float = 0.1
    max_tokens: int = 4000
    repair_retry: bool = True


class BatchSettings(BaseModel):
    batch_size: int = Field(default=25, ge=1)
    # 1 keeps batches strictly sequential.
    concurrency: int = Field(default=1, ge=1, le=8)
    content_truncation: int = 1000
    continuity_title_limit: int = Field(default=5, ge=0)
    temperature: float = 0.2
    max_tokens: int = 4000


class MergeSettings(BaseModel):
    title_dedupe: bool = False
    title_sequence_threshold: float = Field(default=0.9, ge=0, le=1)
    title_word_threshold: float = Field(default=0.8, ge=0, le=1)
    title_containment_min_chars: int = Field(default=16, ge=1)
    summary_top_stories: int = Field(default=3, ge=0)


class SummarySettings(BaseModel):
    use_oracle: bool = False
    story_limit: int = 5
    subject_max_chars: int = Field(default=60, ge=10)
    temperature: float = 0.3
    max_tokens: int = 1500
    sender_signature: str = "The Mundus Team"


class RetrySettings(BaseModel):
    max_retries: int = Field(default=1, ge=0)
    backoff_base_seconds: float = Field(default=2.0, ge=0)
    backoff_max_seconds: float = Field(default=10.0, ge=0)


class DigestPipelineSettings(BaseModel):
    prefilter: PreFilterSettings = Field(default_factory=PreFilterSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    merge: MergeSettings = Field(default_factory=MergeSettings)
    summary: SummarySettings = Field(default_factory=SummarySettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)


def _split_key(key: str) -> tuple[str, str] | None:
    if key.startswith(KEY_PREFIX):
        key = key[len(KEY_PREFIX):]
    parts = key.split(".")
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


async def load_pipeline_settings(
    session: AsyncSession,
    recipient_id: str | uuid.UUID | None = None,
) -> DigestPipelineSettings:
    """Load pipeline settings from the digest_settings table, merged with defaults.

    Keys are ``<group>.<field>`` (a leading ``digest.`` is accepted). Rows with
    no recipient apply to everyone; rows for ``recipient_id`` win over them.
    """
    stmt = select(DigestSetting)
    if recipient_id is not None:
        stmt = stmt.where(
            or_(DigestSetting.recipient_id.is_(None), DigestSetting.recipient_id == uuid.UUID(str(recipient_id)))
        )
    else:
        stmt = stmt.where(DigestSetting.recipient_id.is_(None))
    rows = (await session.execute(stmt)).scalars().all()

    merged = DigestPipelineSettings().model_dump()
    # Global rows first so recipient rows overwrite them.
    for row in sorted(rows, key=lambda r: r.recipient_id is not None):
        parsed = _split_key(row.key)
        if parsed is None or parsed[0] not in merged or parsed[1] not in merged[parsed[0]]:
            logger.warning("Ignoring unsupported digest setting key: %s", row.key)
            continue
        group, field = parsed
        merged[group][field] = row.value
        if row.recipient_id is not None:
            logger.info("Recipient override %s=%r", row.key, row.value)

    return DigestPipelineSettings(**merged)


def pipeline_settings_schema() -> dict[str, Any]:
    """Return the full JSON Schema for DigestPipelineSettings with defaults."""
    return DigestPipelineSettings.model_json_schema()
