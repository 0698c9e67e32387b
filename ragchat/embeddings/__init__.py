"""Text embedding providers."""

from ragchat.embeddings.models import EmbeddingResult
from ragchat.embeddings.service import EmbeddingService, HTTPEmbeddingService

__all__ = [
    "EmbeddingResult",
    "EmbeddingService",
    "HTTPEmbeddingService",
]
