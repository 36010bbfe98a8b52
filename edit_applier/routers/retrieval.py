"""Embedding and rerank passthrough endpoints"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from edit_applier.models.retrieval import (
    EmbedRequest,
    EmbedResponse,
    RerankItem,
    RerankRequest,
    RerankResponse,
)
from edit_applier.services.apply_client import ApplyClient
from edit_applier.services.config_manager import ConfigManager
from edit_applier.services.errors import ApplyError

router = APIRouter()

# Upstream error category -> HTTP status returned to our caller
_STATUS_FOR_CATEGORY = {
    "auth": 401,
    "bad_request": 400,
    "rate_limit": 429,
    "timeout": 504,
}


def _http_error(error: ApplyError) -> HTTPException:
    status = _STATUS_FOR_CATEGORY.get(error.category, 502)
    return HTTPException(status_code=status, detail={"category": error.category, "message": error.message})


@router.post("/embed", response_model=EmbedResponse)
async def embed(request: EmbedRequest) -> EmbedResponse:
    """Embed texts with the hosted embedding model"""
    if not request.input:
        raise HTTPException(status_code=400, detail="input must not be empty")

    client = ApplyClient(ConfigManager.get_instance().get_config())
    model = request.model or client.embedding_model
    try:
        embeddings = await client.embed(request.input, model=model)
    except ApplyError as e:
        raise _http_error(e)
    return EmbedResponse(model=model, embeddings=embeddings)


@router.post("/rerank", response_model=RerankResponse)
async def rerank(request: RerankRequest) -> RerankResponse:
    """Order documents by relevance to the query"""
    if not request.documents:
        raise HTTPException(status_code=400, detail="documents must not be empty")

    client = ApplyClient(ConfigManager.get_instance().get_config())
    model = request.model or client.rerank_model
    try:
        results = await client.rerank(request.query, request.documents, top_n=request.top_n, model=model)
    except ApplyError as e:
        raise _http_error(e)
    return RerankResponse(model=model, results=[RerankItem(**r) for r in results])
