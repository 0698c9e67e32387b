"""Service construction and request-scoped dependencies.

Every collaborator is built once at startup, before the app accepts
traffic, and closed on shutdown.
"""

from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from ragchat.config import Settings
from ragchat.embeddings.service import EmbeddingService, HTTPEmbeddingService
from ragchat.llm.client import LLMClient, OpenAICompatibleClient
from ragchat.logging_config import get_logger
from ragchat.rag.pipeline import RAGPipeline
from ragchat.vectorstore.service import QdrantVectorStore, VectorStore

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Ready-to-use collaborators shared by all requests."""

    embedding_service: EmbeddingService
    vector_store: VectorStore
    llm_client: LLMClient
    pipeline: RAGPipeline

    async def close(self) -> None:
        """Close every client, last-built first."""
        await self.llm_client.close()
        await self.vector_store.close()
        await self.embedding_service.close()


async def build_services(settings: Settings) -> ServiceContainer:
    """Construct the pipeline and its collaborators from settings.

    Raises:
        VectorStoreError: If the collection cannot be created.
    """
    embedding_service = HTTPEmbeddingService(settings.embedding)
    vector_store = QdrantVectorStore(embedding_service, settings.qdrant)
    try:
        await vector_store.ensure_collection()
    except Exception:
        await vector_store.close()
        await embedding_service.close()
        raise

    llm_client = OpenAICompatibleClient(settings.llm)
    pipeline = RAGPipeline(
        vector_store=vector_store,
        llm_client=llm_client,
        default_top_k=settings.rag.default_top_k,
    )

    logger.info(
        "Services initialized",
        extra={
            "collection": vector_store.collection_name,
            "embedding_model": embedding_service.model_name,
            "llm_model": llm_client.model_name,
        },
    )
    return ServiceContainer(
        embedding_service=embedding_service,
        vector_store=vector_store,
        llm_client=llm_client,
        pipeline=pipeline,
    )


def get_pipeline(request: Request) -> RAGPipeline:
    """Return the pipeline wired at startup.

    Raises:
        HTTPException: 503 if the app started without a pipeline.
    """
    pipeline: RAGPipeline | None = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        logger.warning("RAG pipeline not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "RAG pipeline not configured",
                "message": "The RAG pipeline requires embedding service, vector store, and LLM to be running",
            },
        )
    return pipeline
