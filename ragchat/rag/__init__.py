"""RAG pipeline module."""

from ragchat.rag.models import AnswerResult, ScoredAnswerResult
from ragchat.rag.pipeline import RAGPipeline

__all__ = [
    "AnswerResult",
    "RAGPipeline",
    "ScoredAnswerResult",
]
