"""
Pytest configuration and fixtures for jela_core tests.
"""

import pytest
import pytest_asyncio

from jela_core.data import RowFilterPolicy, SqlAlchemyStorage, make_session_factory
from jela_core.models import Base
from jela_core.services import ValidationSink

from sample_models import make_engine  # also puts the sample tables on Base


@pytest.fixture
def policy():
    """Row filter policy with every sample model registered."""
    policy = RowFilterPolicy()
    policy.register_all(Base)
    return policy


@pytest_asyncio.fixture
async def engine(policy):
    """
    Fresh in-memory database per test.
    Hidden columns are on the tables because `policy` registered first.
    """
    engine = make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine, policy):
    return make_session_factory(engine, policy)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(db_session):
    return SqlAlchemyStorage(db_session)


@pytest.fixture
def sink():
    return ValidationSink()
