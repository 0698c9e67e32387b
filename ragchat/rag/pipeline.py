"""RAG pipeline orchestrator."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from ragchat.exceptions import (
    ErrorCode,
    GenerationError,
    IngestionError,
    PipelineStage,
    RAGPlatformError,
    RetrievalError,
    ValidationError,
    VectorStoreError,
)
from ragchat.llm.client import LLMClient
from ragchat.llm.models import GenerationResult
from ragchat.llm.prompts import RAGPromptTemplate
from ragchat.logging_config import get_logger
from ragchat.observability.metrics import observe_rag_query
from ragchat.rag.models import AnswerResult, ScoredAnswerResult
from ragchat.vectorstore.models import Document, documents_from_texts
from ragchat.vectorstore.service import VectorStore

logger = get_logger(__name__)

_STAGE_ERRORS: dict[PipelineStage, type[RAGPlatformError]] = {
    PipelineStage.INGESTION: IngestionError,
    PipelineStage.RETRIEVAL: RetrievalError,
    PipelineStage.GENERATION: GenerationError,
    PipelineStage.CLEAR: VectorStoreError,
}


@contextmanager
def _stage(stage: PipelineStage) -> Iterator[None]:
    """Tag collaborator failures with the stage they happened in.

    Platform errors are re-raised as-is with ``details["stage"]`` set;
    anything else is wrapped in the stage's error type.
    """
    try:
        yield
    except RAGPlatformError as e:
        e.details.setdefault("stage", stage.value)
        logger.error(
            f"{stage.value.capitalize()} failed: {e.message}",
            extra={"stage": stage.value, "error_code": e.code.value},
        )
        raise
    except Exception as e:
        logger.error(
            f"{stage.value.capitalize()} failed: {e}",
            extra={"stage": stage.value},
        )
        raise _STAGE_ERRORS[stage](
            f"{stage.value.capitalize()} failed: {e}",
            details={"stage": stage.value, "error": str(e)},
        ) from e


class RAGPipeline:
    """Orchestrates ingestion and grounded answering.

    Holds no per-request state: every call retrieves, builds a fresh
    single-turn prompt and generates. Collaborators are injected ready to use.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        llm_client: LLMClient,
        prompt_template: RAGPromptTemplate | None = None,
        default_top_k: int = 5,
    ) -> None:
        """Initialize the RAG pipeline.

        Args:
            vector_store: Store used for ingestion and retrieval.
            llm_client: LLM client for generation.
            prompt_template: Grounding prompt template.
            default_top_k: Documents retrieved when k is not given.
        """
        self._vector_store = vector_store
        self._llm_client = llm_client
        self._prompt_template = prompt_template or RAGPromptTemplate()
        self._default_top_k = self._check_k(default_top_k)

    @property
    def collection_name(self) -> str:
        return self._vector_store.collection_name

    @staticmethod
    def _check_k(k: int) -> int:
        if isinstance(k, bool) or not isinstance(k, int) or k < 1:
            raise ValidationError(
                f"k must be a positive integer, got {k!r}",
                details={"k": k},
            )
        return k

    async def ingest_documents(self, documents: list[Document]) -> list[str]:
        """Store documents and return their ids in input order.

        Raises:
            EmbeddingError: If the batch cannot be embedded.
            IngestionError: If the store rejects the batch.
        """
        if not documents:
            return []

        with _stage(PipelineStage.INGESTION):
            ids = await self._vector_store.add_documents(documents)
            self._check_ids(ids, len(documents))

        logger.info(
            f"Added {len(ids)} documents",
            extra={"collection": self.collection_name},
        )
        return ids

    async def ingest_texts(
        self,
        texts: list[str],
        metadatas: list[dict[str, Any]] | None = None,
        ids: list[str] | None = None,
    ) -> list[str]:
        """Store raw texts and return their ids in input order.

        Args:
            texts: Texts to store.
            metadatas: Per-text metadata. Shorter than texts or absent is
                fine; missing entries become {}.
            ids: Optional caller-supplied ids, one per text.

        Raises:
            ValidationError: If metadata outnumbers texts or ids do not
                match texts one-to-one.
        """
        documents = documents_from_texts(texts, metadatas, ids)
        if not documents:
            return []

        with _stage(PipelineStage.INGESTION):
            stored_ids = await self._vector_store.add_texts(
                texts,
                [doc.metadata for doc in documents],
                ids,
            )
            self._check_ids(stored_ids, len(texts))

        logger.info(
            f"Added {len(stored_ids)} texts",
            extra={"collection": self.collection_name},
        )
        return stored_ids

    @staticmethod
    def _check_ids(ids: list[str], expected: int) -> None:
        if len(ids) != expected:
            raise IngestionError(
                f"Store returned {len(ids)} ids for a batch of {expected}",
                code=ErrorCode.INGESTION_ID_MISMATCH,
                details={"batch_size": expected, "ids_returned": len(ids)},
            )

    async def answer(
        self,
        query: str,
        k: int | None = None,
        system_prompt: str | None = None,
    ) -> AnswerResult:
        """Answer a question from the top-k retrieved documents.

        Args:
            query: The question.
            k: Documents to retrieve (default 5).
            system_prompt: Replaces the default grounding prompt entirely.

        Returns:
            AnswerResult with the answer and the retrieved documents.
        """
        k = self._check_k(self._default_top_k if k is None else k)
        logger.info(
            "Processing RAG query",
            extra={"query_length": len(query), "k": k},
        )

        with observe_rag_query("plain"):
            with _stage(PipelineStage.RETRIEVAL):
                documents = await self._vector_store.similarity_search(query, k)
            generation = await self._generate(
                query, [doc.content for doc in documents], system_prompt
            )

        logger.info(
            "RAG query completed",
            extra={"sources_count": len(documents), "tokens_used": generation.total_tokens},
        )
        return AnswerResult(
            answer=generation.content,
            sources=documents,
            model=generation.model,
            tokens_used=generation.total_tokens,
        )

    async def answer_with_scores(
        self,
        query: str,
        k: int | None = None,
        system_prompt: str | None = None,
    ) -> ScoredAnswerResult:
        """Like answer(), but sources carry their similarity scores.

        Scores are cosine similarities as returned by the store; they never
        reach the prompt.
        """
        k = self._check_k(self._default_top_k if k is None else k)
        logger.info(
            "Processing RAG query with scores",
            extra={"query_length": len(query), "k": k},
        )

        with observe_rag_query("scored"):
            with _stage(PipelineStage.RETRIEVAL):
                scored = await self._vector_store.similarity_search_with_score(query, k)
            generation = await self._generate(
                query, [result.document.content for result in scored], system_prompt
            )

        logger.info(
            "RAG query with scores completed",
            extra={"sources_count": len(scored), "tokens_used": generation.total_tokens},
        )
        return ScoredAnswerResult(
            answer=generation.content,
            sources=scored,
            model=generation.model,
            tokens_used=generation.total_tokens,
        )

    async def _generate(
        self,
        query: str,
        chunks: list[str],
        system_prompt: str | None,
    ) -> GenerationResult:
        messages = self._prompt_template.build_messages(query, chunks, system_prompt)
        with _stage(PipelineStage.GENERATION):
            return await self._llm_client.generate(messages)

    async def count_documents(self) -> int:
        """Number of documents in the active collection."""
        return await self._vector_store.count()

    async def clear(self) -> None:
        """Remove every document from the active collection."""
        with _stage(PipelineStage.CLEAR):
            await self._vector_store.clear()
        logger.info(
            "Cleared all documents",
            extra={"collection": self.collection_name},
        )
