"""Pipeline test fixtures."""

import pytest

from mundus.schemas.digest import RecipientProfile, TopicProfile


@pytest.fixture
def recipient():
    return RecipientProfile(
        id="7b0c5a3e-2f41-4d3b-9a51-3c1f0e8d2a10",
        name="Nordic Power AB",
        organization="Nordic Power",
        brief="Utility-scale renewables developer",
        preferences={"topics": ["Energy"], "language": "sv"},
    )


@pytest.fixture
def energy_profile():
    return TopicProfile(topics=["Energy"], categories=["Business", "Technology", "Politics"])


@pytest.fixture
def empty_profile():
    return TopicProfile()


@pytest.fixture
def unscoped_recipient():
    return RecipientProfile(
        id="0d9f6c1b-8e2a-4f57-b3c4-5a6e7f809102",
        name="General Desk",
        preferences={},
    )
