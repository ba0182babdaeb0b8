"""Pydantic schemas shared by the digest pipeline."""

from mundus.schemas.digest import (
    Batch,
    BatchResult,
    CandidateDocument,
    CandidateStory,
    ContinuityContext,
    DigestEmail,
    DigestEnvelope,
    DigestMetadata,
    DigestRequest,
    DigestRunMetadata,
    DigestSections,
    MergedDigest,
    RecipientProfile,
    StoryCategory,
    StoryPriority,
    StorySource,
    TopicProfile,
)

__all__ = [
    "Batch",
    "BatchResult",
    "CandidateDocument",
    "CandidateStory",
    "ContinuityContext",
    "DigestEmail",
    "DigestEnvelope",
    "DigestMetadata",
    "DigestRequest",
    "DigestRunMetadata",
    "DigestSections",
    "MergedDigest",
    "RecipientProfile",
    "StoryCategory",
    "StoryPriority",
    "StorySource",
    "TopicProfile",
]
