"""Shared test configuration."""

import uuid

import pytest

from mundus.config import reset_settings_cache


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Keep env-derived settings isolated per test."""
    monkeypatch.setenv("ORACLE_API_KEY", "test-key")
    monkeypatch.setenv("ORACLE_API_ENDPOINT", "https://oracle.test/api/v1")
    monkeypatch.setenv("ORACLE_MODEL", "test/model")
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def recipient_id():
    return "7b0c5a3e-2f41-4d3b-9a51-3c1f0e8d2a10"


@pytest.fixture
def recipient_row(recipient_id):
    """Stand-in for a DigestRecipient ORM row."""

    class FakeRecipient:
        id = uuid.UUID(recipient_id)
        name = "Nordic Power AB"
        organization = "Nordic Power"
        brief = "Utility-scale renewables developer"
        preferences = {"topics": ["Energy"], "language": "sv"}
        is_active = True

    return FakeRecipient()


@pytest.fixture
def sample_articles():
    return [
        {
            "article_id": f"a{i}",
            "title": f"Grid operator update {i}",
            "summary": f"Transmission capacity report number {i}.",
            "source": {"name": "Energy Wire", "url": f"https://example.test/{i}"},
            "published_at": "2026-03-02T08:00:00Z",
        }
        for i in range(1, 31)
    ]
