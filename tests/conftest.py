"""Shared fixtures for scorecard tests.

Note: Tests never touch DoltDB. Repositories are the in-memory fakes from
factories.py.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path so tests can import scorecard without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from factories import (  # noqa: E402
    IMPORTED,
    FakeConsolidatedRepository,
    FakeProjectRepository,
    FakeRatingRepository,
    FakeReviewQueue,
    FakeSummaryRepository,
    InMemoryStore,
)
from scorecard.config import EngineSettings  # noqa: E402
from scorecard.services import performance_tiers  # noqa: E402
from scorecard.services.performance_tiers import TierConfig, TierThreshold  # noqa: E402
from scorecard.services.runner import ScorecardRunner  # noqa: E402


@pytest.fixture
def tier_config():
    return TierConfig(
        thresholds=(TierThreshold("top", 8.0), TierThreshold("mid", 6.0), TierThreshold("low", 0.0)),
        unrated="unrated",
    )


@pytest.fixture(autouse=True)
def _clear_tier_cache():
    performance_tiers.clear_cache()
    yield
    performance_tiers.clear_cache()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def settings():
    return EngineSettings(import_sentinel=IMPORTED, import_window_seconds=300, max_workers=2)


@pytest.fixture
def runner(store, settings, tier_config):
    return ScorecardRunner(
        project_repo=FakeProjectRepository(store),
        rating_repo=FakeRatingRepository(store),
        summary_repo=FakeSummaryRepository(store),
        consolidated_repo=FakeConsolidatedRepository(store),
        review_queue=FakeReviewQueue(store),
        transaction=store.transaction,
        settings=settings,
        tier_config=tier_config,
    )
