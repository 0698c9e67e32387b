"""Prometheus metrics for the RAG service.

Every metric lives under the ``ragchat`` namespace. Pipeline answers and
vector store calls are timed with context managers; model calls report
their own token counts.
"""

import time
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware

NAMESPACE = "ragchat"

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    namespace=NAMESPACE,
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

HTTP_REQUEST_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    namespace=NAMESPACE,
)

RAG_QUERY_DURATION = Histogram(
    "rag_query_duration_seconds",
    "End-to-end answer latency (retrieval plus generation)",
    ["mode", "status"],
    namespace=NAMESPACE,
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

RAG_QUERY_TOTAL = Counter(
    "rag_queries_total",
    "Answer calls by mode (plain, scored) and outcome",
    ["mode", "status"],
    namespace=NAMESPACE,
)

LLM_REQUEST_DURATION = Histogram(
    "llm_request_duration_seconds",
    "Chat completion latency",
    ["model", "status"],
    namespace=NAMESPACE,
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

LLM_REQUEST_TOTAL = Counter(
    "llm_requests_total",
    "Chat completion calls",
    ["model", "status"],
    namespace=NAMESPACE,
)

LLM_TOKENS_TOTAL = Counter(
    "llm_tokens_total",
    "Tokens reported by the model provider",
    ["model", "type"],
    namespace=NAMESPACE,
)

EMBEDDING_REQUEST_DURATION = Histogram(
    "embedding_request_duration_seconds",
    "Embedding call latency",
    ["model", "status"],
    namespace=NAMESPACE,
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

EMBEDDING_TEXTS_TOTAL = Counter(
    "embedding_texts_total",
    "Texts sent for embedding",
    ["model", "status"],
    namespace=NAMESPACE,
)

RETRIEVAL_DOCUMENTS_RETURNED = Histogram(
    "retrieval_documents_returned",
    "Documents returned per similarity search",
    namespace=NAMESPACE,
    buckets=[0, 1, 2, 3, 5, 10, 20, 50],
)

RETRIEVAL_TOP_SCORE = Histogram(
    "retrieval_top_score",
    "Cosine similarity of the best match per search",
    namespace=NAMESPACE,
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

VECTORSTORE_OPERATION_DURATION = Histogram(
    "vectorstore_operation_duration_seconds",
    "Qdrant call latency",
    ["operation", "status"],
    namespace=NAMESPACE,
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0],
)

DOCUMENTS_INGESTED_TOTAL = Counter(
    "documents_ingested_total",
    "Documents written to the vector store",
    namespace=NAMESPACE,
)


def _status(success: bool) -> str:
    return "success" if success else "error"


def normalize_endpoint(path: str) -> str:
    """Collapse request paths into a bounded set of label values."""
    if path.startswith("/health"):
        return "/health"
    segments = path.strip("/").split("/")
    if segments[0] == "rag" and len(segments) > 1:
        return f"/rag/{segments[1]}"
    return path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records latency and count for every request except scrapes."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)

        labels = {
            "method": request.method,
            "endpoint": normalize_endpoint(request.url.path),
            "status_code": str(response.status_code),
        }
        HTTP_REQUEST_DURATION.labels(**labels).observe(time.perf_counter() - start)
        HTTP_REQUEST_TOTAL.labels(**labels).inc()
        return response


def get_metrics() -> bytes:
    """Render the default registry in the Prometheus text format."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST


@contextmanager
def observe_rag_query(mode: str) -> Iterator[None]:
    """Time one answer call; failures are recorded, then re-raised.

    Args:
        mode: "plain" or "scored".
    """
    start = time.perf_counter()
    success = False
    try:
        yield
        success = True
    finally:
        status = _status(success)
        RAG_QUERY_DURATION.labels(mode=mode, status=status).observe(
            time.perf_counter() - start
        )
        RAG_QUERY_TOTAL.labels(mode=mode, status=status).inc()


@contextmanager
def observe_vectorstore_operation(operation: str) -> Iterator[None]:
    """Time one Qdrant call (upsert, query, delete, count, clear)."""
    start = time.perf_counter()
    success = False
    try:
        yield
        success = True
    finally:
        VECTORSTORE_OPERATION_DURATION.labels(
            operation=operation, status=_status(success)
        ).observe(time.perf_counter() - start)


def track_llm_request(
    model: str,
    duration: float,
    prompt_tokens: int,
    completion_tokens: int,
    success: bool = True,
) -> None:
    """Record one chat completion call.

    Token counts are only added for successful calls.
    """
    status = _status(success)
    LLM_REQUEST_DURATION.labels(model=model, status=status).observe(duration)
    LLM_REQUEST_TOTAL.labels(model=model, status=status).inc()
    if success:
        LLM_TOKENS_TOTAL.labels(model=model, type="prompt").inc(prompt_tokens)
        LLM_TOKENS_TOTAL.labels(model=model, type="completion").inc(completion_tokens)


def track_embedding_request(
    model: str,
    duration: float,
    batch_size: int,
    success: bool = True,
) -> None:
    """Record one embedding call covering ``batch_size`` texts."""
    status = _status(success)
    EMBEDDING_REQUEST_DURATION.labels(model=model, status=status).observe(duration)
    EMBEDDING_TEXTS_TOTAL.labels(model=model, status=status).inc(batch_size)


def track_retrieval_request(
    documents_returned: int,
    top_score: float | None = None,
) -> None:
    """Record the result size of one similarity search.

    Args:
        documents_returned: Number of documents returned.
        top_score: Similarity of the best match, if any matched.
    """
    RETRIEVAL_DOCUMENTS_RETURNED.observe(documents_returned)
    if top_score is not None:
        RETRIEVAL_TOP_SCORE.observe(top_score)


def track_ingestion(count: int) -> None:
    DOCUMENTS_INGESTED_TOTAL.inc(count)
