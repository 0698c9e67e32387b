"""Vector store data models."""

from collections import Counter
from typing import Any

from pydantic import BaseModel, Field

from ragchat.exceptions import ValidationError


class Document(BaseModel):
    """A unit of retrievable knowledge.

    Attributes:
        id: Record identifier. Assigned by the store when not supplied.
        content: Text used for embedding and as generation context.
        metadata: Open mapping passed through untouched.
    """

    id: str | None = Field(default=None, description="Record identifier")
    content: str = Field(description="Document text")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Document metadata",
    )


class ScoredDocument(BaseModel):
    """A retrieved document with its similarity score.

    Attributes:
        document: The matched document.
        score: Cosine similarity to the query (higher is more similar).
    """

    document: Document = Field(description="Matched document")
    score: float = Field(allow_inf_nan=False, description="Cosine similarity")


def check_unique_ids(ids: list[str]) -> None:
    """Reject a batch that names the same id more than once.

    Raises:
        ValidationError: If any id repeats.
    """
    repeated = sorted(i for i, n in Counter(ids).items() if n > 1)
    if repeated:
        raise ValidationError(
            f"Duplicate ids in batch: {', '.join(repeated)}",
            details={"duplicate_ids": repeated},
        )


def documents_from_texts(
    texts: list[str],
    metadatas: list[dict[str, Any]] | None = None,
    ids: list[str] | None = None,
) -> list[Document]:
    """Pair texts with their metadata and ids.

    Missing metadata entries default to an empty mapping.

    Raises:
        ValidationError: If there are more metadata entries than texts,
            or ids are given for some texts but not all,
            or an id repeats.
    """
    metadatas = metadatas or []
    if len(metadatas) > len(texts):
        raise ValidationError(
            f"Got {len(metadatas)} metadata entries for {len(texts)} texts",
            details={"texts": len(texts), "metadata": len(metadatas)},
        )
    if ids is not None and len(ids) != len(texts):
        raise ValidationError(
            f"Got {len(ids)} ids for {len(texts)} texts",
            details={"texts": len(texts), "ids": len(ids)},
        )
    if ids is not None:
        check_unique_ids(ids)

    return [
        Document(
            id=ids[i] if ids is not None else None,
            content=text,
            metadata=dict(metadatas[i]) if i < len(metadatas) else {},
        )
        for i, text in enumerate(texts)
    ]
