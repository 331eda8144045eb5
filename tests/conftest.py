"""
Shared test fixtures.

Clocks are injected so expiry and budget periods are deterministic; the
follow-up generator is replaced with a scripted fake so no test reaches
the network.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from src.core.config import AssessmentConfig
from src.core.exceptions import GenerationError
from src.domain.models.cost import BudgetConfig
from src.persistence.database import init_database
from src.persistence.repositories.cost_entry_repo import CostEntryRepository
from src.services.assessment_service import AssessmentService
from src.services.cost_ledger import CostLedger
from src.services.question_pool import YamlQuestionPool
from src.services.session_store import SessionStore

from tests.helpers import POOL_QUESTIONS, FakeClock, FakeGenerator


@pytest.fixture
def clock():
    """Clock fixed at mid-day, mid-month (UTC)."""
    return FakeClock(datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from src.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("src.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path


@pytest.fixture
async def cost_repo(test_db):
    """Cost entry repository on the test database."""
    return CostEntryRepository(test_db)


@pytest.fixture
def ledger(clock):
    """Ledger with default budget (5.00/day, 127.00/month)."""
    return CostLedger(budget=BudgetConfig(), clock=clock)


@pytest.fixture
def store(clock):
    """Session store with a 30 minute timeout and 3 follow-ups per session."""
    return SessionStore(timeout=timedelta(minutes=30), max_follow_ups=3, clock=clock)


@pytest.fixture
def pool():
    """Small question pool spanning every block."""
    return YamlQuestionPool([q.model_copy(deep=True) for q in POOL_QUESTIONS])


@pytest.fixture
def generator():
    """Follow-up generator that always succeeds."""
    return FakeGenerator()


@pytest.fixture
def failing_generator():
    """Follow-up generator that always fails."""
    return FakeGenerator(error=GenerationError("provider unavailable"))


@pytest.fixture
def assessment_config():
    """Default flow with a generous question limit."""
    return AssessmentConfig()


@pytest.fixture
def service(store, ledger, pool, generator, assessment_config):
    """Assessment service wired with in-memory components."""
    return AssessmentService(
        store=store,
        ledger=ledger,
        pool=pool,
        generator=generator,
        config=assessment_config,
        generation_timeout=1.0,
        cost_environment="test",
    )
