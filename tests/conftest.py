"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from qdrant_client import AsyncQdrantClient

from ragchat.api.app import app
from ragchat.config import QdrantSettings
from ragchat.embeddings.models import EmbeddingResult
from ragchat.embeddings.service import EmbeddingService
from ragchat.exceptions import EmbeddingError
from ragchat.llm.models import GenerationResult
from ragchat.vectorstore.service import QdrantVectorStore


class LetterFrequencyEmbeddings(EmbeddingService):
    """Deterministic embeddings: a-z letter counts plus a constant bias.

    Texts sharing letters end up close; identical texts score 1.0.
    """

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.batches: list[list[str]] = []

    @property
    def model_name(self) -> str:
        return "letter-frequency"

    @property
    def dimensions(self) -> int:
        return 27

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * 26 + [0.01]
        for char in text.lower():
            if "a" <= char <= "z":
                vector[ord(char) - ord("a")] += 1.0
        return vector

    async def embed(self, text: str) -> EmbeddingResult:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        if self.fail:
            raise EmbeddingError("embedding backend down")
        self.batches.append(list(texts))
        return [
            EmbeddingResult(
                text=text,
                embedding=self._vector(text),
                model=self.model_name,
                dimensions=self.dimensions,
            )
            for text in texts
        ]


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def embeddings() -> LetterFrequencyEmbeddings:
    """Deterministic embedding service."""
    return LetterFrequencyEmbeddings()


@pytest.fixture
async def memory_store(
    embeddings: LetterFrequencyEmbeddings,
) -> AsyncGenerator[QdrantVectorStore, None]:
    """Qdrant store running in-process, with an empty collection."""
    store = QdrantVectorStore(
        embeddings,
        settings=QdrantSettings(url=":memory:", collection_name="test_documents"),
        client=AsyncQdrantClient(location=":memory:"),
    )
    await store.ensure_collection()
    yield store
    await store._client.close()


@pytest.fixture
def llm() -> AsyncMock:
    """LLM client that always answers the same text."""
    llm = AsyncMock()
    llm.model_name = "test-model"
    llm.generate = AsyncMock(
        return_value=GenerationResult(
            content="Generated answer",
            model="test-model",
            prompt_tokens=50,
            completion_tokens=20,
            total_tokens=70,
        )
    )
    return llm
