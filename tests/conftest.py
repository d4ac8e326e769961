"""Pytest configuration and fixtures."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ["ADVISORY_ENV"] = "test"

from advisory_engine.core.analyzer import DocumentAnalyzer  # noqa: E402
from advisory_engine.core.chunking import Chunker  # noqa: E402
from advisory_engine.core.config import Settings, get_settings  # noqa: E402
from advisory_engine.core.document_processing import TextExtractor  # noqa: E402
from advisory_engine.core.embeddings import EmbeddingGenerator  # noqa: E402
from advisory_engine.core.services import ServiceContainer  # noqa: E402
from tests.fakes.fake_providers import make_embedding_response  # noqa: E402
from tests.fakes.fake_store import FakeDocumentStore, FakeStorage  # noqa: E402

EMBEDDING_DIM = 8


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["ADVISORY_ENV"] = "test"
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        SUPABASE_URL="https://test.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="test-key",
        OPENAI_API_KEY=None,
        ANTHROPIC_API_KEY=None,
        EMBEDDING_DIM=EMBEDDING_DIM,
        CHUNK_MAX_TOKENS=50,
        EMBEDDING_BACKOFF_MIN=0.0,
        EMBEDDING_BACKOFF_MAX=0.0,
    )


def word_count(text: str) -> int:
    return len(text.split())


@pytest.fixture
def embedding_client() -> MagicMock:
    """Mock AsyncOpenAI client returning a constant unit-ish vector."""
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        return_value=make_embedding_response([1.0] + [0.0] * (EMBEDDING_DIM - 1))
    )
    return client


@pytest.fixture
def fake_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def services(settings, embedding_client, fake_store, fake_storage) -> ServiceContainer:
    """Container wired with fakes: no provider keys, so analysis uses heuristics."""
    supabase = MagicMock()
    user = MagicMock()
    user.id = "user-1"
    user.email = "owner@example.com"
    supabase.auth.get_user.return_value = MagicMock(user=user)

    return ServiceContainer(
        settings=settings,
        supabase=supabase,
        extractor=TextExtractor(),
        chunker=Chunker(word_count, max_tokens=settings.CHUNK_MAX_TOKENS),
        embedder=EmbeddingGenerator(
            client=embedding_client,
            dimension=EMBEDDING_DIM,
            backoff_min=0.0,
            backoff_max=0.0,
        ),
        analyzer=DocumentAnalyzer(client=None),
        store=fake_store,
        storage=fake_storage,
    )
