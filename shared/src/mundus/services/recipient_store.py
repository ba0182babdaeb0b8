"""Recipient lookup against the datastore."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mundus.errors import CollaboratorNotFoundError
from mundus.models import DigestRecipient
from mundus.schemas.digest import RecipientProfile

logger = logging.getLogger(__name__)


def _parse_uuid(value: str) -> uuid.UUID | None:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return uuid.UUID(text)
    except ValueError:
        return None


def recipient_to_profile(row: DigestRecipient) -> RecipientProfile:
    preferences = row.preferences if isinstance(row.preferences, dict) else {}
    return RecipientProfile(
        id=str(row.id),
        name=str(row.name or "").strip() or str(row.id),
        organization=str(row.organization or "").strip(),
        brief=str(row.brief or "").strip(),
        preferences=dict(preferences),
    )


async def load_recipient(session: AsyncSession, recipient_id: str) -> RecipientProfile:
    """Load an active recipient by id.

    Raises:
        CollaboratorNotFoundError: If the id is malformed or no active row exists.
    """
    logger.info("Loading recipient: %s", recipient_id)
    parsed = _parse_uuid(recipient_id)
    if parsed is None:
        raise CollaboratorNotFoundError(
            f"Recipient '{recipient_id}' not found", details={"recipient_id": recipient_id}
        )

    result = await session.execute(
        select(DigestRecipient).where(
            DigestRecipient.id == parsed,
            DigestRecipient.is_active.is_(True),
        )
    )
    row = result.scalars().first()
    if row is None:
        raise CollaboratorNotFoundError(
            f"Recipient '{recipient_id}' not found", details={"recipient_id": recipient_id}
        )

    profile = recipient_to_profile(row)
    logger.info("Loaded recipient: %s", profile.name)
    return profile
