"""Summary stage - oracle-written email to accompany the digest."""

from __future__ import annotations

import logging
from typing import Any

from mundus.errors import OracleSchemaError
from mundus.schemas.digest import DigestEmail, MergedDigest, RecipientProfile, TopicProfile
from mundus.services.llm_client import LLMClient
from mundus.services.pipeline_settings import SummarySettings

from digest_pipeline.prompts.summary import (
    SUMMARY_SCHEMA_NAME,
    build_summary_prompt,
    summary_schema,
)

logger = logging.getLogger(__name__)

SUMMARY_SLOT = "summary"


def _parse_email(data: Any, subject_max_chars: int) -> DigestEmail:
    if not isinstance(data, dict):
        raise OracleSchemaError("Summary response must be an object", slot=SUMMARY_SLOT)
    subject = data.get("subject")
    body_html = data.get("body_html")
    highlights = data.get("key_highlights")
    if not isinstance(subject, str) or not subject.strip():
        raise OracleSchemaError("Summary subject missing", slot=SUMMARY_SLOT)
    if not isinstance(body_html, str) or not body_html.strip():
        raise OracleSchemaError("Summary body_html missing", slot=SUMMARY_SLOT)
    if not isinstance(highlights, list) or not all(isinstance(h, str) for h in highlights):
        raise OracleSchemaError("Summary key_highlights must be a list of strings", slot=SUMMARY_SLOT)
    if not 3 <= len(highlights) <= 4:
        raise OracleSchemaError(
            f"Summary must have 3-4 key_highlights, got {len(highlights)}",
            slot=SUMMARY_SLOT,
        )
    if len(subject) > subject_max_chars:
        # Not every provider enforces maxLength.
        subject = subject[: subject_max_chars - 3].rstrip() + "..."
    return DigestEmail(
        subject=subject.strip(),
        body_html=body_html.strip(),
        key_highlights=[h.strip() for h in highlights],
    )


async def run_summary_stage(
    client: LLMClient,
    digest: MergedDigest,
    recipient: RecipientProfile,
    profile: TopicProfile,
    settings: SummarySettings | None = None,
) -> MergedDigest:
    """Replace the template email with an oracle-written one."""
    ss = settings or SummarySettings()
    prompt = build_summary_prompt(
        digest.main_stories,
        recipient,
        profile,
        story_limit=ss.story_limit,
        subject_max_chars=ss.subject_max_chars,
        signature=ss.sender_signature,
    )
    data = await client.generate_structured(
        SUMMARY_SLOT,
        [{"role": "user", "content": prompt}],
        schema_name=SUMMARY_SCHEMA_NAME,
        schema=summary_schema(ss.subject_max_chars),
        temperature=ss.temperature,
        max_tokens=ss.max_tokens,
    )
    email = _parse_email(data, ss.subject_max_chars)
    logger.info("Generated summary email: %s", email.subject)
    return digest.model_copy(update={"email": email})
