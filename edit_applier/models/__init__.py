"""Models module - Pydantic data models"""

from .edit import (
    AcceptRequest,
    ApplyEditRequest,
    ApplyMode,
    ApplyResult,
    ApplyStatus,
    CheckRequest,
    CheckResponse,
    Diagnostic,
    EditOutcome,
    EditRequest,
    EditSession,
    EditWarning,
    ReapplyRequest,
    Segment,
)
from .retrieval import (
    EmbedRequest,
    EmbedResponse,
    RerankItem,
    RerankRequest,
    RerankResponse,
    StreamEvent,
)
from .diff import DiffHunk, DiffResult

__all__ = [
    # Edit models
    "AcceptRequest",
    "ApplyEditRequest",
    "ApplyMode",
    "ApplyResult",
    "ApplyStatus",
    "CheckRequest",
    "CheckResponse",
    "Diagnostic",
    "EditOutcome",
    "EditRequest",
    "EditSession",
    "EditWarning",
    "ReapplyRequest",
    "Segment",
    # Retrieval models
    "EmbedRequest",
    "EmbedResponse",
    "RerankItem",
    "RerankRequest",
    "RerankResponse",
    "StreamEvent",
    # Diff models
    "DiffHunk",
    "DiffResult",
]
