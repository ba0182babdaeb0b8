"""SQLAlchemy ORM models for Mundus."""

from mundus.models.base import Base
from mundus.models.digest_setting import DigestSetting
from mundus.models.recipient import DigestRecipient

__all__ = [
    "Base",
    "DigestRecipient",
    "DigestSetting",
]
