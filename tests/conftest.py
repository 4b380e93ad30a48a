# tests/conftest.py
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from keyword_discovery.database import Base, build_session_factory
from keyword_discovery import models  # noqa: F401
from keyword_discovery.schemas.keyword_job import KeywordJobCreate
from keyword_discovery.services.keyword_job_store import KeywordJobStore
from keyword_discovery.services.keyword_scoring import KeywordScorer
from keyword_discovery.services.keyword_strategy import KeywordStrategyGenerator

from tests.mocks.mock_providers import MockAppCatalog, MockSuggestionProvider


# Per-test sqlite file, so concurrent sessions get their own connections
@pytest.fixture(scope="function")
async def test_engine(tmp_path):
    """Create and configure the test database engine (function-scoped)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/keywords.db")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(session_factory):
    return KeywordJobStore(session_factory)


# Mock fixtures for external services
@pytest.fixture
def mock_catalog():
    """Provide an in-memory App Store catalog"""
    return MockAppCatalog()


@pytest.fixture
def mock_provider():
    """Provide a scripted keyword suggestion provider"""
    return MockSuggestionProvider()


@pytest.fixture
def generator(mock_provider):
    return KeywordStrategyGenerator(mock_provider, call_delay=0)


@pytest.fixture
def scorer(mock_catalog):
    return KeywordScorer(mock_catalog, search_limit=10)


@pytest.fixture
def sample_job_data():
    """Provide sample job config for tests"""
    return {
        "name": "Fitness discovery",
        "strategy": "category",
        "seed_category": "Health & Fitness",
        "country": "us",
        "searches_per_batch": 2,
        "interval_minutes": 15,
        "total_cycles": 3,
    }


@pytest.fixture
def job_config(sample_job_data):
    return KeywordJobCreate(**sample_job_data)
