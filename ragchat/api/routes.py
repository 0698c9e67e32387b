"""API routes for RAG operations."""

from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ragchat.api.dependencies import get_pipeline
from ragchat.logging_config import get_logger
from ragchat.rag.models import AnswerResult, ScoredAnswerResult
from ragchat.rag.pipeline import RAGPipeline
from ragchat.vectorstore.models import Document

logger = get_logger(__name__)


router = APIRouter(prefix="/rag", tags=["RAG"])

PipelineDep = Annotated[RAGPipeline, Depends(get_pipeline)]


def _now() -> str:
    return datetime.now(UTC).isoformat()


class CamelModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(CamelModel):
    """Request body for chat endpoints."""

    message: str = Field(min_length=1, description="Question to answer")
    max_results: int | None = Field(
        default=None,
        ge=1,
        description="Documents to retrieve (default 5)",
    )
    system_prompt: str | None = Field(
        default=None,
        description="Replaces the default grounding prompt",
    )


class SourceResponse(CamelModel):
    """A retrieved document."""

    content: str = Field(description="Document text")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Document metadata")


class ScoredSourceResponse(CamelModel):
    """A retrieved document with its similarity score."""

    document: SourceResponse = Field(description="Retrieved document")
    score: float = Field(description="Cosine similarity (higher is more similar)")


class ChatResponse(CamelModel):
    """Response from the chat endpoint."""

    answer: str = Field(description="Generated answer")
    sources: list[SourceResponse] = Field(description="Retrieved documents, best first")
    timestamp: str = Field(description="Response time (ISO 8601)")


class ChatWithScoresResponse(CamelModel):
    """Response from the chat-with-scores endpoint."""

    answer: str = Field(description="Generated answer")
    sources: list[ScoredSourceResponse] = Field(description="Scored documents, best first")
    timestamp: str = Field(description="Response time (ISO 8601)")


class DocumentRequest(CamelModel):
    """A document to ingest."""

    content: str = Field(description="Document text")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Document metadata")


class AddDocumentsRequest(CamelModel):
    """Request body for document ingestion."""

    documents: list[DocumentRequest] = Field(description="Documents to ingest")
    source: str | None = Field(default=None, description="Source label (default 'api')")


class AddDocumentsResponse(CamelModel):
    """Response from document ingestion."""

    document_ids: list[str] = Field(description="Stored ids, in request order")
    count: int = Field(description="Number of documents stored")
    timestamp: str = Field(description="Response time (ISO 8601)")


class AddTextsRequest(CamelModel):
    """Request body for raw text ingestion."""

    texts: list[str] = Field(description="Texts to ingest")
    metadata: list[dict[str, Any]] | None = Field(
        default=None,
        description="Per-text metadata",
    )
    ids: list[str] | None = Field(default=None, description="Per-text ids")


class AddTextsResponse(CamelModel):
    """Response from raw text ingestion."""

    text_ids: list[str] = Field(description="Stored ids, in request order")
    count: int = Field(description="Number of texts stored")
    timestamp: str = Field(description="Response time (ISO 8601)")


class ClearDocumentsResponse(CamelModel):
    """Response from clearing the collection."""

    message: str = Field(description="Outcome")
    timestamp: str = Field(description="Response time (ISO 8601)")


class StatsResponse(CamelModel):
    """Collection statistics."""

    document_count: int = Field(description="Stored documents")
    collection_name: str = Field(description="Active collection")


def answer_to_chat_response(result: AnswerResult) -> ChatResponse:
    """Convert a pipeline answer to the wire response."""
    return ChatResponse(
        answer=result.answer,
        sources=[
            SourceResponse(content=doc.content, metadata=doc.metadata)
            for doc in result.sources
        ],
        timestamp=_now(),
    )


def scored_answer_to_chat_response(result: ScoredAnswerResult) -> ChatWithScoresResponse:
    """Convert a scored pipeline answer to the wire response."""
    return ChatWithScoresResponse(
        answer=result.answer,
        sources=[
            ScoredSourceResponse(
                document=SourceResponse(
                    content=source.document.content,
                    metadata=source.document.metadata,
                ),
                score=source.score,
            )
            for source in result.sources
        ],
        timestamp=_now(),
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, pipeline: PipelineDep) -> ChatResponse:
    """Answer a question from the ingested documents."""
    logger.info(f"Chat request: {request.message[:100]}")

    result = await pipeline.answer(
        request.message,
        k=request.max_results,
        system_prompt=request.system_prompt,
    )

    logger.info(f"Chat response: {result.answer[:100]}")
    return answer_to_chat_response(result)


@router.post("/chat-with-scores", response_model=ChatWithScoresResponse)
async def chat_with_scores(
    request: ChatRequest,
    pipeline: PipelineDep,
) -> ChatWithScoresResponse:
    """Answer a question and report the similarity of each source."""
    logger.info(f"Chat with scores request: {request.message[:100]}")

    result = await pipeline.answer_with_scores(
        request.message,
        k=request.max_results,
        system_prompt=request.system_prompt,
    )

    logger.info(f"Chat with scores response: {result.answer[:100]}")
    return scored_answer_to_chat_response(result)


@router.post(
    "/documents",
    response_model=AddDocumentsResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_documents(
    request: AddDocumentsRequest,
    pipeline: PipelineDep,
) -> AddDocumentsResponse:
    """Ingest documents, stamping each with its source and ingestion time."""
    logger.info(f"Adding {len(request.documents)} documents")

    ingested_at = _now()
    documents = [
        Document(
            content=doc.content,
            metadata={
                **doc.metadata,
                "source": request.source or "api",
                "timestamp": ingested_at,
            },
        )
        for doc in request.documents
    ]
    document_ids = await pipeline.ingest_documents(documents)

    logger.info(f"Added {len(document_ids)} documents successfully")
    return AddDocumentsResponse(
        document_ids=document_ids,
        count=len(document_ids),
        timestamp=_now(),
    )


@router.post(
    "/texts",
    response_model=AddTextsResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_texts(request: AddTextsRequest, pipeline: PipelineDep) -> AddTextsResponse:
    """Ingest raw texts with optional per-text metadata and ids."""
    logger.info(f"Adding {len(request.texts)} texts")

    text_ids = await pipeline.ingest_texts(request.texts, request.metadata, request.ids)

    logger.info(f"Added {len(text_ids)} texts successfully")
    return AddTextsResponse(text_ids=text_ids, count=len(text_ids), timestamp=_now())


@router.delete("/documents", response_model=ClearDocumentsResponse)
async def clear_documents(pipeline: PipelineDep) -> ClearDocumentsResponse:
    """Remove every document from the collection."""
    logger.info("Clearing all documents")

    await pipeline.clear()

    return ClearDocumentsResponse(
        message="All documents cleared successfully",
        timestamp=_now(),
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(pipeline: PipelineDep) -> StatsResponse:
    """Report the collection name and document count."""
    return StatsResponse(
        document_count=await pipeline.count_documents(),
        collection_name=pipeline.collection_name,
    )
