"""Tests for candidate document normalization."""

from datetime import UTC, datetime

import pytest

from mundus.errors import EmptyPoolError, ValidationError
from mundus.schemas.digest import RecipientProfile

from digest_pipeline.news.normalizer import (
    build_topic_profile,
    is_valid_document,
    normalize_document,
    normalize_documents,
)


def test_is_valid_document():
    assert is_valid_document({"title": "Solar auction"}) is True
    assert is_valid_document({"description": "Body only"}) is True
    assert is_valid_document({"title": "   ", "summary": ""}) is False
    assert is_valid_document("just a string") is False
    assert is_valid_document(None) is False


def test_normalize_document_defaults():
    doc = normalize_document({"content": "Wind farm approved"}, 4)
    assert doc.id == "article_4"
    assert doc.title == ""
    assert doc.body == "Wind farm approved"
    assert doc.source_name == "Unknown"
    assert doc.url is None
    assert doc.published_at is None


def test_normalize_document_body_field_order():
    doc = normalize_document({"title": "T", "text": "from text", "summary": "from summary"}, 1)
    assert doc.body == "from summary"


def test_normalize_document_source_shapes():
    as_string = normalize_document({"title": "T", "source": "Dagens Industri"}, 1)
    as_object = normalize_document(
        {"title": "T", "source": {"name": "E24", "url": "https://e24.test/a"}}, 2
    )
    explicit = normalize_document({"title": "T", "source_name": "Reuters", "source": "Ignored"}, 3)
    assert as_string.source_name == "Dagens Industri"
    assert as_object.source_name == "E24"
    assert as_object.url == "https://e24.test/a"
    assert explicit.source_name == "Reuters"


def test_normalize_document_published_at():
    doc = normalize_document({"title": "T", "publishedAt": "2026-03-02T08:00:00Z"}, 1)
    assert doc.published_at == datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
    bad = normalize_document({"title": "T", "published_at": "yesterday"}, 1)
    assert bad.published_at is None


def test_normalize_documents_drops_invalid_items(caplog):
    raw = [{"title": "Keep"}, {"title": ""}, 42, {"summary": "Keep body"}]
    with caplog.at_level("INFO"):
        docs = normalize_documents(raw)
    assert [d.id for d in docs] == ["article_1", "article_4"]
    assert "Dropped 2 invalid documents" in caplog.text


def test_normalize_documents_uniquifies_ids():
    docs = normalize_documents([{"id": "x", "title": "A"}, {"id": "x", "title": "B"}])
    assert [d.id for d in docs] == ["x", "x#2"]


def test_normalize_documents_empty_pool():
    with pytest.raises(EmptyPoolError) as excinfo:
        normalize_documents([{"title": ""}, {}])
    assert isinstance(excinfo.value, ValidationError)
    assert excinfo.value.retryable is False


def test_build_topic_profile_prefers_request_context():
    recipient = RecipientProfile(
        id="r1",
        name="Client",
        brief="Stored brief",
        preferences={"topics": ["Finance"], "keywords": "bank, fintech", "language": "SV"},
    )
    profile = build_topic_profile({"topics": ["Energy", " "], "categories": "Business, Politics"}, recipient)
    assert profile.topics == ["Energy"]
    assert profile.keywords == ["bank", "fintech"]
    assert profile.categories == ["Business", "Politics"]
    assert profile.language == "sv"
    assert profile.brief == "Stored brief"


def test_build_topic_profile_without_anything():
    profile = build_topic_profile(None)
    assert profile.topics == []
    assert profile.language == "en"
