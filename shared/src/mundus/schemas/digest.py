"""Pydantic schemas for digest curation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StoryCategory(str, Enum):
    """Digest section a story is filed under."""

    NEWS = "news"
    BUSINESS = "business"
    POLITICS = "politics"
    EU_RELATIONS = "eu_relations"


class StoryPriority(str, Enum):
    """Priority tier of a story."""

    MAIN = "main"
    B_SIDE = "b_side"


class CandidateDocument(BaseModel):
    """One source article, canonicalized from caller input."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    body: str = ""
    source_name: str = "Unknown"
    url: str | None = None
    category: str = ""
    country: str = ""
    published_at: datetime | None = None
    pre_filter_score: int | None = None
    pre_filter_reason: str | None = None


class TopicProfile(BaseModel):
    """Recipient filtering preferences for one run."""

    model_config = ConfigDict(frozen=True)

    topics: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    language: str = "en"
    brief: str = ""
    organization: str = ""


class RecipientProfile(BaseModel):
    """Recipient record as loaded from the datastore."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    organization: str = ""
    brief: str = ""
    preferences: dict[str, Any] = Field(default_factory=dict)


class ContinuityContext(BaseModel):
    """Condensed view of the previously issued digest."""

    model_config = ConfigDict(frozen=True)

    created_at: str = ""
    article_count: int = 0
    main_titles: list[str] = Field(default_factory=list)


class Batch(BaseModel):
    """Ordered slice of the candidate pool sent in one oracle call."""

    model_config = ConfigDict(frozen=True)

    index: int
    total: int
    documents: list[CandidateDocument]

    @property
    def size(self) -> int:
        return len(self.documents)


class StorySource(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "Unknown Source"
    url: str = ""


class CandidateStory(BaseModel):
    """Oracle-produced extraction unit."""

    model_config = ConfigDict(frozen=True)

    title: str
    source: StorySource = Field(default_factory=StorySource)
    relevance_score: int = Field(default=0, ge=0, le=10)
    category: StoryCategory = StoryCategory.NEWS
    priority: StoryPriority = StoryPriority.B_SIDE
    paragraphs: list[str] = Field(default_factory=list)
    continued_from_previous: bool = False
    article_id: str | None = None


class BatchResult(BaseModel):
    """Stories and counters reported for one batch."""

    model_config = ConfigDict(frozen=True)

    batch_index: int
    stories: list[CandidateStory] = Field(default_factory=list)
    skipped: int = Field(default=0, ge=0)
    duplicates: int = Field(default=0, ge=0)

    @property
    def reviewed(self) -> int:
        return len(self.stories) + self.skipped + self.duplicates


class DigestSections(BaseModel):
    model_config = ConfigDict(frozen=True)

    news: list[CandidateStory] = Field(default_factory=list)
    business: list[CandidateStory] = Field(default_factory=list)
    politics: list[CandidateStory] = Field(default_factory=list)
    eu_relations: list[CandidateStory] = Field(default_factory=list)


class DigestMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    articles_reviewed: int
    articles_included: int
    main_stories: int
    b_side_stories: int
    duplicates_removed: int
    batches_processed: int


class DigestEmail(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: str
    body_html: str
    key_highlights: list[str] = Field(default_factory=list)


class MergedDigest(BaseModel):
    """Final ranked, sectioned digest."""

    model_config = ConfigDict(frozen=True)

    metadata: DigestMetadata
    main_stories: list[CandidateStory] = Field(default_factory=list)
    sections: DigestSections = Field(default_factory=DigestSections)
    b_side: DigestSections = Field(default_factory=DigestSections)
    email: DigestEmail | None = None


class DigestRequest(BaseModel):
    """Pipeline entry payload."""

    recipient_id: str = Field(min_length=1)
    articles: list[Any] = Field(min_length=1)
    country: str | None = None
    context: dict[str, Any] | None = None
    last_digest: dict[str, Any] | None = None


class DigestRunMetadata(BaseModel):
    """Envelope metadata attached to a successful run."""

    generated_at: datetime
    recipient_id: str
    recipient_name: str
    country: str | None = None
    has_previous_context: bool = False
    processing_time_ms: int = 0
    attempts: int = 1
    documents_received: int = 0
    documents_valid: int = 0
    documents_processed: int = 0
    prefilter_applied: bool = False
    degraded_filter: bool = False
    degraded_reason: str | None = None


class DigestEnvelope(BaseModel):
    """Result returned to the transport layer."""

    success: bool = True
    report: MergedDigest
    metadata: DigestRunMetadata
