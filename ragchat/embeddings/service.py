"""Embedding service interface and implementations."""

import time
from abc import ABC, abstractmethod

import httpx

from ragchat.config import EmbeddingSettings, get_settings
from ragchat.embeddings.models import EmbeddingResult
from ragchat.exceptions import EmbeddingError, ErrorCode
from ragchat.logging_config import get_logger
from ragchat.observability.metrics import track_embedding_request

logger = get_logger(__name__)


class EmbeddingService(ABC):
    """Abstract base class for embedding services.

    Defines the interface for generating text embeddings.
    """

    @abstractmethod
    async def embed(self, text: str) -> EmbeddingResult:
        """Generate embedding for a single text.

        Args:
            text: Text to embed.

        Returns:
            EmbeddingResult with vector.

        Raises:
            EmbeddingError: If embedding fails.
        """
        ...

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts.

        Either every text is embedded or EmbeddingError is raised.

        Args:
            texts: List of texts to embed.

        Returns:
            List of EmbeddingResult objects, in input order.

        Raises:
            EmbeddingError: If embedding fails.
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name used for embeddings."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Get the embedding dimensions."""
        ...

    async def close(self) -> None:
        """Release resources. Override if needed."""
        return None


class HTTPEmbeddingService(EmbeddingService):
    """Embedding service using HTTP API.

    Compatible with OpenAI-style embedding APIs and
    text-embeddings-inference (TEI) servers.
    """

    # Known model dimensions
    MODEL_DIMENSIONS = {
        "sentence-transformers/all-MiniLM-L6-v2": 384,
        "Xenova/all-MiniLM-L6-v2": 384,
        "BAAI/bge-large-en-v1.5": 1024,
        "BAAI/bge-base-en-v1.5": 768,
        "BAAI/bge-small-en-v1.5": 384,
        "text-embedding-ada-002": 1536,
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
    }
    DEFAULT_DIMENSIONS = 384

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP embedding service.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().embedding
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._settings.timeout)
        self._dimensions: int | None = self._settings.dimensions

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        if self._dimensions is not None:
            return self._dimensions
        return self.MODEL_DIMENSIONS.get(self._settings.model, self.DEFAULT_DIMENSIONS)

    async def embed(self, text: str) -> EmbeddingResult:
        """Generate embedding for a single text."""
        results = await self.embed_batch([text])
        return results[0]

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts, batch_size at a time."""
        if not texts:
            return []

        url = f"{self._settings.base_url}/embeddings"
        all_results: list[EmbeddingResult] = []
        batch_size = self._settings.batch_size

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            start = time.perf_counter()
            try:
                batch_results = await self._embed_batch_request(url, batch)
            except EmbeddingError:
                track_embedding_request(
                    self.model_name, time.perf_counter() - start, len(batch), success=False
                )
                raise
            track_embedding_request(self.model_name, time.perf_counter() - start, len(batch))
            all_results.extend(batch_results)

        return all_results

    async def _embed_batch_request(
        self,
        url: str,
        texts: list[str],
    ) -> list[EmbeddingResult]:
        """Make embedding request for a batch.

        Raises:
            EmbeddingError: If the request fails or the response is short.
        """
        payload = {
            "input": texts,
            "model": self._settings.model,
        }

        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Embedding request failed: {e.response.status_code}",
                extra={"url": url, "status": e.response.status_code},
            )
            raise EmbeddingError(
                f"Embedding service returned {e.response.status_code}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Embedding request error: {e}", extra={"url": url})
            raise EmbeddingError(
                f"Failed to connect to embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"url": url},
            ) from e

        try:
            data = response.json()
            embeddings = data["data"]
            # OpenAI responses carry an explicit index; TEI keeps input order
            if all("index" in item for item in embeddings):
                embeddings = sorted(embeddings, key=lambda item: item["index"])
            vectors = [item["embedding"] for item in embeddings]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Invalid response from embedding service: {e}",
                code=ErrorCode.EMBEDDING_SERVICE_ERROR,
                details={"error": str(e)},
            ) from e

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding service returned {len(vectors)} vectors for {len(texts)} texts",
                code=ErrorCode.EMBEDDING_COUNT_MISMATCH,
                details={"expected": len(texts), "received": len(vectors)},
            )

        results: list[EmbeddingResult] = []
        for text, vector in zip(texts, vectors, strict=True):
            if self._dimensions is None and vector:
                self._dimensions = len(vector)
            if len(vector) != self.dimensions:
                raise EmbeddingError(
                    f"Expected {self.dimensions} dimensions, got {len(vector)}",
                    code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
                    details={"expected": self.dimensions, "received": len(vector)},
                )
            results.append(
                EmbeddingResult(
                    text=text,
                    embedding=vector,
                    model=self._settings.model,
                    dimensions=len(vector),
                )
            )

        return results
