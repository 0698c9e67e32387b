"""Vector store module."""

from ragchat.vectorstore.models import Document, ScoredDocument, documents_from_texts
from ragchat.vectorstore.service import QdrantVectorStore, VectorStore, to_point_id

__all__ = [
    "Document",
    "QdrantVectorStore",
    "ScoredDocument",
    "VectorStore",
    "documents_from_texts",
    "to_point_id",
]
