"""Vector store interface and Qdrant implementation."""

from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID, uuid4, uuid5

from pydantic import ValidationError as PydanticValidationError
from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointIdsList,
    PointStruct,
    ScoredPoint,
    VectorParams,
)

from ragchat.config import QdrantSettings, get_settings
from ragchat.embeddings.service import EmbeddingService
from ragchat.exceptions import (
    ErrorCode,
    IngestionError,
    RetrievalError,
    VectorStoreError,
)
from ragchat.logging_config import get_logger
from ragchat.observability.metrics import (
    observe_vectorstore_operation,
    track_ingestion,
    track_retrieval_request,
)
from ragchat.vectorstore.models import (
    Document,
    ScoredDocument,
    check_unique_ids,
    documents_from_texts,
)

logger = get_logger(__name__)

# Namespace for mapping caller-supplied ids onto Qdrant's UUID point ids.
POINT_ID_NAMESPACE = UUID("6f1c1a3e-8d0b-4f5e-9a43-2b7c5d9e0a11")

MEMORY_LOCATION = ":memory:"


def to_point_id(record_id: str) -> str:
    """Map a record id onto a Qdrant point id.

    UUIDs are used as-is; anything else maps to the same uuid5 every time.
    """
    try:
        return str(UUID(record_id))
    except ValueError:
        return str(uuid5(POINT_ID_NAMESPACE, record_id))


class VectorStore(ABC):
    """Abstract base class for vector stores.

    Stores documents alongside their embeddings and answers nearest-neighbour
    queries. Implementations embed text themselves, so callers deal in text
    only. Scores are cosine similarities: higher is more similar.
    """

    @property
    @abstractmethod
    def collection_name(self) -> str:
        """Name of the active collection."""
        ...

    @abstractmethod
    async def ensure_collection(self) -> None:
        """Create the active collection if it does not exist.

        Raises:
            VectorStoreError: If the collection cannot be created.
        """
        ...

    @abstractmethod
    async def add_documents(self, documents: list[Document]) -> list[str]:
        """Embed and store documents.

        The whole batch is embedded before anything is written.

        Args:
            documents: Documents to store. Ids are generated when missing.

        Returns:
            Stored ids, in input order.

        Raises:
            ValidationError: If two documents share an id.
            EmbeddingError: If the batch cannot be embedded.
            IngestionError: If the store rejects the write.
        """
        ...

    async def add_texts(
        self,
        texts: list[str],
        metadatas: list[dict[str, Any]] | None = None,
        ids: list[str] | None = None,
    ) -> list[str]:
        """Embed and store raw texts.

        Args:
            texts: Texts to store.
            metadatas: Per-text metadata; missing entries default to {}.
            ids: Optional caller-supplied ids, one per text.

        Returns:
            Stored ids, in input order.
        """
        return await self.add_documents(documents_from_texts(texts, metadatas, ids))

    @abstractmethod
    async def similarity_search_with_score(
        self,
        query: str,
        k: int = 5,
        filters: dict[str, Any] | None = None,
    ) -> list[ScoredDocument]:
        """Find the k documents most similar to a query.

        Args:
            query: Query text.
            k: Maximum results to return.
            filters: Exact-match conditions on metadata keys.

        Returns:
            Scored documents, best first.

        Raises:
            EmbeddingError: If the query cannot be embedded.
            RetrievalError: If the search fails.
        """
        ...

    async def similarity_search(
        self,
        query: str,
        k: int = 5,
        filters: dict[str, Any] | None = None,
    ) -> list[Document]:
        """Find the k documents most similar to a query, without scores."""
        scored = await self.similarity_search_with_score(query, k, filters)
        return [result.document for result in scored]

    @abstractmethod
    async def delete(self, ids: list[str]) -> int:
        """Delete documents by id.

        Returns:
            Number of ids submitted for deletion.

        Raises:
            VectorStoreError: If deletion fails.
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored documents."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Remove every document from the active collection.

        Idempotent; the collection exists and is empty afterwards.

        Raises:
            VectorStoreError: If the collection cannot be reset.
        """
        ...

    async def close(self) -> None:
        """Release resources. Override if needed."""
        return None


class QdrantVectorStore(VectorStore):
    """Qdrant vector store implementation.

    Payload layout per point: ``content``, ``metadata`` and ``record_id``
    (the id handed back to callers). The collection uses cosine distance.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize Qdrant vector store.

        Args:
            embedding_service: Embeds documents and queries.
            settings: Qdrant configuration.
            client: Existing client (for testing).
        """
        self._embedding_service = embedding_service
        self._settings = settings or get_settings().qdrant
        self._owns_client = client is None
        self._client = client or self._create_client(self._settings)

    @staticmethod
    def _create_client(settings: QdrantSettings) -> AsyncQdrantClient:
        if settings.url == MEMORY_LOCATION:
            return AsyncQdrantClient(location=MEMORY_LOCATION)

        api_key = None
        if settings.api_key:
            api_key = settings.api_key.get_secret_value()
        return AsyncQdrantClient(url=settings.url, api_key=api_key)

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client:
            await self._client.close()

    @property
    def collection_name(self) -> str:
        return self._settings.collection_name

    async def ensure_collection(self) -> None:
        """Create the collection with the embedding dimensions if missing."""
        name = self.collection_name
        try:
            if await self._client.collection_exists(name):
                return
            await self._create_collection()
        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(
                f"Failed to create collection: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": name, "error": str(e)},
            ) from e

    async def _create_collection(self) -> None:
        dimensions = self._embedding_service.dimensions
        await self._client.create_collection(
            collection_name=self.collection_name,
            vectors_config=VectorParams(size=dimensions, distance=Distance.COSINE),
        )
        logger.info(
            f"Created collection: {self.collection_name}",
            extra={"dimensions": dimensions},
        )

    async def add_documents(self, documents: list[Document]) -> list[str]:
        """Embed the batch, then upsert it in a single write."""
        if not documents:
            return []

        ids = [doc.id or str(uuid4()) for doc in documents]
        check_unique_ids(ids)
        embeddings = await self._embedding_service.embed_batch(
            [doc.content for doc in documents]
        )

        points = [
            PointStruct(
                id=to_point_id(record_id),
                vector=embedding.embedding,
                payload={
                    "content": doc.content,
                    "metadata": doc.metadata,
                    "record_id": record_id,
                },
            )
            for record_id, doc, embedding in zip(ids, documents, embeddings, strict=True)
        ]

        try:
            with observe_vectorstore_operation("upsert"):
                await self._client.upsert(
                    collection_name=self.collection_name,
                    points=points,
                    wait=True,
                )
        except Exception as e:
            raise IngestionError(
                f"Failed to store batch of {len(points)} documents: {e}",
                code=ErrorCode.INGESTION_ERROR,
                details={
                    "collection": self.collection_name,
                    "batch_size": len(points),
                    "error": str(e),
                },
            ) from e

        track_ingestion(len(points))
        logger.debug(
            f"Upserted {len(points)} documents",
            extra={"collection": self.collection_name},
        )
        return ids

    async def similarity_search_with_score(
        self,
        query: str,
        k: int = 5,
        filters: dict[str, Any] | None = None,
    ) -> list[ScoredDocument]:
        """Embed the query and run a cosine k-NN search."""
        embedding = await self._embedding_service.embed(query)

        query_filter = self._build_filter(filters)
        try:
            with observe_vectorstore_operation("query"):
                response = await self._client.query_points(
                    collection_name=self.collection_name,
                    query=embedding.embedding,
                    limit=k,
                    query_filter=query_filter,
                    with_payload=True,
                )
        except Exception as e:
            logger.error(f"Retrieval failed: {e}")
            raise RetrievalError(
                f"Failed to search documents: {e}",
                code=ErrorCode.RETRIEVAL_ERROR,
                details={
                    "collection": self.collection_name,
                    "query": query[:100],
                    "error": str(e),
                },
            ) from e

        results = [self._to_scored_document(point) for point in response.points]

        track_retrieval_request(
            len(results), results[0].score if results else None
        )
        logger.debug(
            f"Retrieved {len(results)} documents for query",
            extra={"query_length": len(query), "k": k, "results_count": len(results)},
        )
        return results

    @staticmethod
    def _build_filter(filters: dict[str, Any] | None) -> Filter | None:
        if not filters:
            return None
        conditions = [
            FieldCondition(key=f"metadata.{key}", match=MatchValue(value=value))
            for key, value in filters.items()
        ]
        return Filter(must=conditions)  # type: ignore[arg-type]

    @staticmethod
    def _to_scored_document(point: ScoredPoint) -> ScoredDocument:
        payload = dict(point.payload) if point.payload else {}
        try:
            return ScoredDocument(
                document=Document(
                    id=payload.get("record_id", str(point.id)),
                    content=payload.get("content", ""),
                    metadata=payload.get("metadata") or {},
                ),
                score=point.score,
            )
        except PydanticValidationError as e:
            raise RetrievalError(
                f"Store returned an invalid result for point {point.id}",
                code=ErrorCode.INVALID_SCORE,
                details={"point_id": str(point.id), "score": str(point.score)},
            ) from e

    async def delete(self, ids: list[str]) -> int:
        """Delete documents by record id."""
        if not ids:
            return 0

        selector = PointIdsList(points=[to_point_id(i) for i in ids])  # type: ignore[arg-type]
        try:
            with observe_vectorstore_operation("delete"):
                await self._client.delete(
                    collection_name=self.collection_name,
                    points_selector=selector,
                    wait=True,
                )
        except Exception as e:
            raise VectorStoreError(
                f"Failed to delete documents: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": self.collection_name, "error": str(e)},
            ) from e

        logger.debug(
            f"Deleted {len(ids)} documents",
            extra={"collection": self.collection_name},
        )
        return len(ids)

    async def count(self) -> int:
        """Exact number of points in the collection."""
        try:
            with observe_vectorstore_operation("count"):
                result = await self._client.count(
                    collection_name=self.collection_name,
                    exact=True,
                )
        except Exception as e:
            raise VectorStoreError(
                f"Failed to count documents: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": self.collection_name, "error": str(e)},
            ) from e
        return result.count

    async def clear(self) -> None:
        """Drop the collection and recreate it empty."""
        name = self.collection_name
        try:
            with observe_vectorstore_operation("clear"):
                if await self._client.collection_exists(name):
                    await self._client.delete_collection(name)
                    logger.info(f"Deleted collection: {name}")
                await self._create_collection()
        except Exception as e:
            raise VectorStoreError(
                f"Failed to clear collection: {e}",
                code=ErrorCode.VECTOR_STORE_ERROR,
                details={"collection": name, "error": str(e)},
            ) from e
