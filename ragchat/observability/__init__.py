"""Prometheus instrumentation."""

from ragchat.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
    normalize_endpoint,
    observe_rag_query,
    observe_vectorstore_operation,
    track_embedding_request,
    track_ingestion,
    track_llm_request,
    track_retrieval_request,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "get_metrics_content_type",
    "normalize_endpoint",
    "observe_rag_query",
    "observe_vectorstore_operation",
    "track_embedding_request",
    "track_ingestion",
    "track_llm_request",
    "track_retrieval_request",
]
