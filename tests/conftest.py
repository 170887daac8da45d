"""Shared pytest fixtures for all test suites."""

import os
import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from policyrag.config import Settings
from policyrag.db.context import RequestContext
from policyrag.db.inmemory import InMemoryMetadataStore
from policyrag.db.models import Base
from policyrag.docs.services import PipelineServices
from policyrag.llm.client import DeterministicStubClient
from policyrag.llm.embeddings import DeterministicEmbeddingClient
from policyrag.storage.objects import InMemoryObjectStore
from policyrag.vector.inmemory import InMemoryVectorIndex

TEST_JWT_SECRET = "test-secret-with-at-least-32-bytes!!"

USER_A = uuid.UUID("00000000-0000-0000-0000-00000000000a")
USER_B = uuid.UUID("00000000-0000-0000-0000-00000000000b")


@pytest.fixture
def test_settings() -> Settings:
    """Settings with small test-friendly values."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret=SecretStr(TEST_JWT_SECRET),
        openai_api_key=None,
        pinecone_api_key=None,
        vector_index_poll_interval_s=0.0,
    )


@pytest.fixture
def ctx_a() -> RequestContext:
    """Caller owning the documents under test."""
    return RequestContext(user_id=USER_A)


@pytest.fixture
def ctx_b() -> RequestContext:
    """A second, unrelated caller."""
    return RequestContext(user_id=USER_B)


@pytest.fixture
def services(test_settings: Settings) -> PipelineServices:
    """Pipeline collaborators backed entirely by in-memory fakes."""
    return PipelineServices(
        store=InMemoryMetadataStore(),
        vectors=InMemoryVectorIndex(),
        embedder=DeterministicEmbeddingClient(dimension=32),
        objects=InMemoryObjectStore(),
        synthesizer=DeterministicStubClient(),
        settings=test_settings,
    )


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the full schema.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_session(sqlite_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Session over the in-memory SQLite engine."""
    async with AsyncSession(sqlite_engine, expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_session(postgres_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Async session for PostgreSQL integration tests."""
    async with AsyncSession(postgres_engine, expire_on_commit=False) as session:
        yield session
        await session.rollback()
