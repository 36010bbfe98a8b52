"""Embedding, rerank and stream event models"""

from __future__ import annotations

from pydantic import BaseModel


class EmbedRequest(BaseModel):
    """Request for embeddings of one or more texts"""

    input: list[str]
    model: str | None = None


class EmbedResponse(BaseModel):
    model: str
    embeddings: list[list[float]]


class RerankRequest(BaseModel):
    """Request to order documents by relevance to a query"""

    query: str
    documents: list[str]
    top_n: int | None = None
    model: str | None = None


class RerankItem(BaseModel):
    index: int
    relevance_score: float
    document: str | None = None


class RerankResponse(BaseModel):
    model: str
    results: list[RerankItem] = []


class StreamEvent(BaseModel):
    """SSE stream event"""

    type: str  # "content", "done", "error"
    chunk: str | None = None
    metadata: dict | None = None
    done: bool = False
    error: str | None = None
