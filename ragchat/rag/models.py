"""RAG pipeline data models."""

from pydantic import BaseModel, Field

from ragchat.vectorstore.models import Document, ScoredDocument


class AnswerResult(BaseModel):
    """Answer to one question with the documents it was grounded on.

    Attributes:
        answer: Generated answer.
        sources: Retrieved documents in store rank order.
        model: LLM model used.
        tokens_used: Total tokens consumed.
    """

    answer: str = Field(description="Generated answer")
    sources: list[Document] = Field(
        default_factory=list,
        description="Retrieved documents, best first",
    )
    model: str = Field(description="LLM model used")
    tokens_used: int = Field(default=0, description="Total tokens consumed")


class ScoredAnswerResult(BaseModel):
    """Answer with scored sources."""

    answer: str = Field(description="Generated answer")
    sources: list[ScoredDocument] = Field(
        default_factory=list,
        description="Retrieved documents with similarity scores, best first",
    )
    model: str = Field(description="LLM model used")
    tokens_used: int = Field(default=0, description="Total tokens consumed")
