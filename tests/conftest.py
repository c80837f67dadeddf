"""
pytest configuration and fixtures.

Author: Fleet Platform Team
Version: 1.0.0
"""

import pytest

from fixtures import NOW
from fleetscore.db.memory import (
    InMemoryDriverScoreRepository,
    InMemoryViolationRepository,
)
from fleetscore.scoring.aggregator import ScoreAggregator


@pytest.fixture
def violation_repo():
    return InMemoryViolationRepository()


@pytest.fixture
def score_repo():
    return InMemoryDriverScoreRepository()


@pytest.fixture
def clock():
    """Fixed clock returning NOW."""
    return lambda: NOW


@pytest.fixture
def aggregator(violation_repo, score_repo, clock):
    return ScoreAggregator(
        violation_repo,
        score_repo,
        window_days=30,
        baseline=100,
        timeout_seconds=1.0,
        write_attempts=3,
        clock=clock,
    )
