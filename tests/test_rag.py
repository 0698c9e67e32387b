"""Tests for RAG pipeline module."""

import math
from unittest.mock import AsyncMock

import pytest

from ragchat.exceptions import (
    EmbeddingError,
    ErrorCode,
    GenerationError,
    IngestionError,
    RetrievalError,
    ValidationError,
    VectorStoreError,
)
from ragchat.llm.models import Role
from ragchat.rag.models import AnswerResult, ScoredAnswerResult
from ragchat.rag.pipeline import RAGPipeline
from ragchat.vectorstore.models import Document, ScoredDocument


def _create_mock_store(
    documents: list[Document] | None = None,
    scored: list[ScoredDocument] | None = None,
) -> AsyncMock:
    """Create mock vector store."""
    store = AsyncMock()
    store.collection_name = "test"
    store.similarity_search = AsyncMock(return_value=documents or [])
    store.similarity_search_with_score = AsyncMock(return_value=scored or [])
    store.add_documents = AsyncMock(return_value=[])
    store.add_texts = AsyncMock(return_value=[])
    store.clear = AsyncMock()
    store.count = AsyncMock(return_value=0)
    return store


def _prompt_sent(llm: AsyncMock) -> str:
    messages = llm.generate.call_args.args[0]
    assert len(messages) == 1
    assert messages[0].role == Role.USER
    return messages[0].content


class TestAnswerResult:
    """Tests for answer models."""

    def test_create_response(self) -> None:
        """Response can be created."""
        response = AnswerResult(
            answer="Qdrant is a vector database.",
            sources=[Document(content="Qdrant stores vectors.", metadata={"x": 1})],
            model="llama",
            tokens_used=100,
        )
        assert len(response.sources) == 1
        assert response.sources[0].metadata == {"x": 1}

    def test_scored_response(self) -> None:
        """Scored response keeps score next to the document."""
        response = ScoredAnswerResult(
            answer="A",
            sources=[ScoredDocument(document=Document(content="c"), score=0.8)],
            model="llama",
        )
        assert response.sources[0].score == 0.8
        assert response.tokens_used == 0


class TestAnswer:
    """Tests for RAGPipeline.answer."""

    async def test_default_k_is_five(self, llm: AsyncMock) -> None:
        """Retrieval uses k=5 when the caller does not say."""
        store = _create_mock_store()
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        await pipeline.answer("Test question")

        store.similarity_search.assert_awaited_once_with("Test question", 5)

    async def test_custom_k(self, llm: AsyncMock) -> None:
        """Caller k is passed to retrieval."""
        store = _create_mock_store()
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        await pipeline.answer("Test question", k=3)

        store.similarity_search.assert_awaited_once_with("Test question", 3)

    @pytest.mark.parametrize("k", [0, -1])
    async def test_non_positive_k_rejected(self, llm: AsyncMock, k: int) -> None:
        """k must be positive; nothing is called otherwise."""
        store = _create_mock_store()
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        with pytest.raises(ValidationError):
            await pipeline.answer("Test", k=k)

        store.similarity_search.assert_not_called()
        llm.generate.assert_not_called()

    async def test_returns_answer_and_sources(self, llm: AsyncMock) -> None:
        """Answer text comes from the model, sources from the store."""
        docs = [
            Document(id="1", content="First", metadata={"source": "a"}),
            Document(id="2", content="Second", metadata={"source": "b"}),
        ]
        pipeline = RAGPipeline(vector_store=_create_mock_store(docs), llm_client=llm)

        result = await pipeline.answer("What?")

        assert result.answer == "Generated answer"
        assert result.model == "test-model"
        assert result.tokens_used == 70
        assert result.sources == docs

    async def test_default_prompt_numbers_context(self, llm: AsyncMock) -> None:
        """Context is numbered from 1 in retrieval order."""
        docs = [Document(content="First passage"), Document(content="Second passage")]
        pipeline = RAGPipeline(vector_store=_create_mock_store(docs), llm_client=llm)

        await pipeline.answer("What is first?")

        prompt = _prompt_sent(llm)
        assert prompt.startswith("You are a helpful assistant")
        assert "Context:\n[1] First passage\n\n[2] Second passage\n" in prompt
        assert "Question: What is first?" in prompt
        assert "I don't have enough information to answer this question" in prompt

    async def test_system_prompt_replaces_template(self, llm: AsyncMock) -> None:
        """A caller prompt is sent verbatim instead of the template."""
        docs = [Document(content="Passage")]
        pipeline = RAGPipeline(vector_store=_create_mock_store(docs), llm_client=llm)

        await pipeline.answer("Q", system_prompt="Reply in French.")

        assert _prompt_sent(llm) == "Reply in French."

    async def test_empty_system_prompt_uses_template(self, llm: AsyncMock) -> None:
        """An empty caller prompt falls back to the template."""
        pipeline = RAGPipeline(vector_store=_create_mock_store(), llm_client=llm)

        await pipeline.answer("Q", system_prompt="")

        assert _prompt_sent(llm).startswith("You are a helpful assistant")

    async def test_no_results_still_generates(self, llm: AsyncMock) -> None:
        """Empty retrieval is not special-cased."""
        llm.generate.return_value.content = "I don't have enough information."
        pipeline = RAGPipeline(vector_store=_create_mock_store([]), llm_client=llm)

        result = await pipeline.answer("Unknown topic")

        llm.generate.assert_awaited_once()
        assert "Context:\n\n\nQuestion: Unknown topic" in _prompt_sent(llm)
        assert result.sources == []
        assert result.answer == "I don't have enough information."

    async def test_retrieval_error_propagates_with_stage(self, llm: AsyncMock) -> None:
        """Store errors surface unchanged, tagged with the stage."""
        store = _create_mock_store()
        error = RetrievalError("store down")
        store.similarity_search.side_effect = error
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        with pytest.raises(RetrievalError) as exc_info:
            await pipeline.answer("Q")

        assert exc_info.value is error
        assert exc_info.value.stage == "retrieval"
        llm.generate.assert_not_called()

    async def test_query_embedding_error_tagged_retrieval(self, llm: AsyncMock) -> None:
        """Embedding failures keep their type."""
        store = _create_mock_store()
        store.similarity_search.side_effect = EmbeddingError("no vectors")
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        with pytest.raises(EmbeddingError) as exc_info:
            await pipeline.answer("Q")

        assert exc_info.value.details["stage"] == "retrieval"

    async def test_foreign_retrieval_error_wrapped(self, llm: AsyncMock) -> None:
        """Non-platform errors become RetrievalError."""
        store = _create_mock_store()
        store.similarity_search.side_effect = ConnectionError("refused")
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        with pytest.raises(RetrievalError) as exc_info:
            await pipeline.answer("Q")

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert exc_info.value.stage == "retrieval"

    async def test_generation_error_tagged(self, llm: AsyncMock) -> None:
        """Generation errors carry the generation stage."""
        llm.generate.side_effect = GenerationError(
            "timed out", code=ErrorCode.GENERATION_TIMEOUT
        )
        pipeline = RAGPipeline(vector_store=_create_mock_store(), llm_client=llm)

        with pytest.raises(GenerationError) as exc_info:
            await pipeline.answer("Q")

        assert exc_info.value.code == ErrorCode.GENERATION_TIMEOUT
        assert exc_info.value.stage == "generation"


class TestAnswerWithScores:
    """Tests for RAGPipeline.answer_with_scores."""

    async def test_preserves_rank_order(self, llm: AsyncMock) -> None:
        """Sources come back exactly in store order, scores untouched."""
        scored = [
            ScoredDocument(document=Document(content="Low"), score=0.2),
            ScoredDocument(document=Document(content="High"), score=0.9),
        ]
        store = _create_mock_store(scored=scored)
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        result = await pipeline.answer_with_scores("Q", k=2)

        store.similarity_search_with_score.assert_awaited_once_with("Q", 2)
        assert [s.document.content for s in result.sources] == ["Low", "High"]
        assert [s.score for s in result.sources] == [0.2, 0.9]

    async def test_scores_not_in_prompt(self, llm: AsyncMock) -> None:
        """Only document text reaches the prompt."""
        scored = [ScoredDocument(document=Document(content="Passage"), score=0.123456)]
        pipeline = RAGPipeline(vector_store=_create_mock_store(scored=scored), llm_client=llm)

        await pipeline.answer_with_scores("Q")

        prompt = _prompt_sent(llm)
        assert "[1] Passage" in prompt
        assert "0.123456" not in prompt

    async def test_system_prompt_replaces_template(self, llm: AsyncMock) -> None:
        """Caller prompt applies to the scored variant too."""
        pipeline = RAGPipeline(vector_store=_create_mock_store(), llm_client=llm)

        await pipeline.answer_with_scores("Q", system_prompt="Custom")

        assert _prompt_sent(llm) == "Custom"


class TestIngestion:
    """Tests for ingestion through the pipeline."""

    async def test_ingest_documents_returns_ids(self, llm: AsyncMock) -> None:
        """Ids come back in input order."""
        store = _create_mock_store()
        store.add_documents.return_value = ["id-1", "id-2"]
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)
        docs = [Document(content="a"), Document(content="b")]

        ids = await pipeline.ingest_documents(docs)

        assert ids == ["id-1", "id-2"]
        store.add_documents.assert_awaited_once_with(docs)

    async def test_ingest_empty_batch(self, llm: AsyncMock) -> None:
        """Empty batch does not touch the store."""
        store = _create_mock_store()
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        assert await pipeline.ingest_documents([]) == []
        assert await pipeline.ingest_texts([]) == []
        store.add_documents.assert_not_called()
        store.add_texts.assert_not_called()

    async def test_store_rejection_surfaces(self, llm: AsyncMock) -> None:
        """A rejected batch raises a single IngestionError."""
        store = _create_mock_store()
        store.add_documents.side_effect = IngestionError("rejected")
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        with pytest.raises(IngestionError) as exc_info:
            await pipeline.ingest_documents([Document(content="a")])

        assert exc_info.value.stage == "ingestion"

    async def test_id_count_mismatch(self, llm: AsyncMock) -> None:
        """Store must return one id per document."""
        store = _create_mock_store()
        store.add_documents.return_value = ["only-one"]
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        with pytest.raises(IngestionError) as exc_info:
            await pipeline.ingest_documents([Document(content="a"), Document(content="b")])

        assert exc_info.value.code == ErrorCode.INGESTION_ID_MISMATCH

    async def test_ingest_texts_pads_metadata(self, llm: AsyncMock) -> None:
        """Missing metadata entries become empty mappings."""
        store = _create_mock_store()
        store.add_texts.return_value = ["1", "2", "3"]
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        await pipeline.ingest_texts(["a", "b", "c"], [{"x": 1}])

        store.add_texts.assert_awaited_once_with(
            ["a", "b", "c"], [{"x": 1}, {}, {}], None
        )

    async def test_ingest_texts_without_metadata(self, llm: AsyncMock) -> None:
        """Absent metadata is never an error."""
        store = _create_mock_store()
        store.add_texts.return_value = ["1"]
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        assert await pipeline.ingest_texts(["a"]) == ["1"]
        store.add_texts.assert_awaited_once_with(["a"], [{}], None)

    async def test_ingest_texts_too_much_metadata(self, llm: AsyncMock) -> None:
        """More metadata entries than texts is rejected."""
        store = _create_mock_store()
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        with pytest.raises(ValidationError):
            await pipeline.ingest_texts(["a"], [{"x": 1}, {"x": 2}])

        store.add_texts.assert_not_called()

    async def test_ingest_texts_id_mismatch(self, llm: AsyncMock) -> None:
        """Ids must match texts one-to-one."""
        pipeline = RAGPipeline(vector_store=_create_mock_store(), llm_client=llm)

        with pytest.raises(ValidationError):
            await pipeline.ingest_texts(["a", "b"], ids=["only-one"])

    async def test_ingest_texts_repeated_ids(self, llm: AsyncMock) -> None:
        """Two texts cannot share an id."""
        store = _create_mock_store()
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        with pytest.raises(ValidationError) as exc_info:
            await pipeline.ingest_texts(["a", "b"], ids=["x", "x"])

        assert exc_info.value.details == {"duplicate_ids": ["x"]}
        store.add_texts.assert_not_called()
        store.add_documents.assert_not_called()


class TestClear:
    """Tests for RAGPipeline.clear."""

    async def test_clear_delegates(self, llm: AsyncMock) -> None:
        """Clear empties the store."""
        store = _create_mock_store()
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        await pipeline.clear()

        store.clear.assert_awaited_once()

    async def test_clear_failure_tagged(self, llm: AsyncMock) -> None:
        """Clear failures carry the clear stage."""
        store = _create_mock_store()
        store.clear.side_effect = VectorStoreError("drop failed")
        pipeline = RAGPipeline(vector_store=store, llm_client=llm)

        with pytest.raises(VectorStoreError) as exc_info:
            await pipeline.clear()

        assert exc_info.value.stage == "clear"


class TestPipelineWithQdrant:
    """End-to-end behaviour against an in-process Qdrant collection."""

    async def test_single_document_scenario(self, memory_store, llm: AsyncMock) -> None:
        """One ingested text is the one source for k=1."""
        pipeline = RAGPipeline(vector_store=memory_store, llm_client=llm)
        await pipeline.ingest_texts(["ChromaDB is a vector database."])

        result = await pipeline.answer("What is ChromaDB?", k=1)

        assert len(result.sources) == 1
        assert result.sources[0].content == "ChromaDB is a vector database."

    async def test_metadata_round_trip(self, memory_store, llm: AsyncMock) -> None:
        """Metadata comes back with the matching text."""
        pipeline = RAGPipeline(vector_store=memory_store, llm_client=llm)
        await pipeline.ingest_texts(["a", "b"], [{"x": 1}, {"x": 2}])

        results = await memory_store.similarity_search("a", k=1)

        assert results[0].content == "a"
        assert results[0].metadata == {"x": 1}

    async def test_k_larger_than_corpus(self, memory_store, llm: AsyncMock) -> None:
        """Sources are capped by corpus size, never padded."""
        pipeline = RAGPipeline(vector_store=memory_store, llm_client=llm)
        await pipeline.ingest_texts(["alpha", "beta", "gamma"])

        result = await pipeline.answer("alpha", k=10)

        assert len(result.sources) == 3

    async def test_answer_is_repeatable(self, memory_store, llm: AsyncMock) -> None:
        """Same query over an unchanged collection gives the same sources."""
        pipeline = RAGPipeline(vector_store=memory_store, llm_client=llm)
        await pipeline.ingest_texts(["apples and pears", "bicycle repair", "pear tarts"])

        first = await pipeline.answer("pears")
        second = await pipeline.answer("pears")

        assert [d.id for d in first.sources] == [d.id for d in second.sources]

    async def test_scores_finite_and_descending(self, memory_store, llm: AsyncMock) -> None:
        """Cosine similarity: higher is closer, best first."""
        pipeline = RAGPipeline(vector_store=memory_store, llm_client=llm)
        await pipeline.ingest_texts(["zzz", "abc", "abd"])

        result = await pipeline.answer_with_scores("abc", k=3)

        scores = [s.score for s in result.sources]
        assert all(math.isfinite(score) for score in scores)
        assert scores == sorted(scores, reverse=True)
        assert result.sources[0].document.content == "abc"
        assert scores[0] == pytest.approx(1.0, abs=1e-4)
        assert result.sources[-1].document.content == "zzz"

    async def test_empty_corpus(self, memory_store, llm: AsyncMock) -> None:
        """Empty collection: no sources, answer is the model's own text."""
        pipeline = RAGPipeline(vector_store=memory_store, llm_client=llm)
        await pipeline.clear()

        result = await pipeline.answer("anything", k=5)

        assert result.sources == []
        assert result.answer == "Generated answer"

    async def test_clear_empties_store(self, memory_store, llm: AsyncMock) -> None:
        """After clear, search returns nothing."""
        pipeline = RAGPipeline(vector_store=memory_store, llm_client=llm)
        await pipeline.ingest_texts(["one", "two"])

        await pipeline.clear()

        assert await memory_store.similarity_search("anything", 5) == []
        assert await pipeline.count_documents() == 0

    async def test_clear_is_idempotent(self, memory_store, llm: AsyncMock) -> None:
        """Clearing twice is fine and leaves the store usable."""
        pipeline = RAGPipeline(vector_store=memory_store, llm_client=llm)
        await pipeline.ingest_texts(["one"])

        await pipeline.clear()
        await pipeline.clear()
        await pipeline.ingest_texts(["two"])

        assert await pipeline.count_documents() == 1

    async def test_embedding_failure_writes_nothing(
        self, memory_store, embeddings, llm: AsyncMock
    ) -> None:
        """A failed batch embedding leaves the collection untouched."""
        embeddings.fail = True
        pipeline = RAGPipeline(vector_store=memory_store, llm_client=llm)

        with pytest.raises(EmbeddingError) as exc_info:
            await pipeline.ingest_texts(["one", "two"])

        assert exc_info.value.stage == "ingestion"
        embeddings.fail = False
        assert await pipeline.count_documents() == 0
