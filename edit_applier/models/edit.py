"""Edit-apply data models"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from .diff import DiffResult


class ApplyMode(str, Enum):
    """How the merged content is consumed from the apply service"""

    STREAMING = "streaming"
    BLOCKING = "blocking"


class ApplyStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class Diagnostic(BaseModel):
    """Why an apply attempt failed"""

    category: str  # auth, rate_limit, bad_request, server_error, timeout, connection, stream_interrupted, truncated
    message: str
    status_code: int | None = None
    retry_after: float | None = None


class ApplyResult(BaseModel):
    """Outcome of one exchange with the apply service"""

    merged_content: str = ""
    status: ApplyStatus
    diagnostic: Diagnostic | None = None

    @property
    def ok(self) -> bool:
        return self.status == ApplyStatus.SUCCESS


class EditRequest(BaseModel):
    """Original content plus the sparse update to merge into it"""

    target_identifier: str
    original_content: str
    update_snippet: str


class Segment(BaseModel):
    """A run of literal edit lines or a single truncation marker"""

    kind: str  # "edit" or "marker"
    text: str


class EditWarning(BaseModel):
    """Advisory finding about an update snippet"""

    code: str  # "ambiguous_edit", "marker_syntax", "unrequested_change"
    message: str
    line: int | None = None  # 1-indexed within the snippet (merged file for unrequested_change)


class EditSession(BaseModel):
    """Tracks the apply/reapply attempts made against one target"""

    target_identifier: str
    original_content: str
    instructions: str
    code_edit: str
    created: bool = False  # target did not exist before the first attempt
    attempt_count: int = 0
    last_result: ApplyResult | None = None


class EditOutcome(BaseModel):
    """Caller-facing result of apply_edit / reapply"""

    success: bool
    message: str
    target_file: str
    category: str | None = None
    attempts: int = 0
    created: bool = False
    diff: DiffResult | None = None
    warnings: list[EditWarning] = []


class ApplyEditRequest(BaseModel):
    """Request to apply a sparse edit to a file"""

    target_file: str
    instructions: str
    code_edit: str
    mode: ApplyMode | None = None


class ReapplyRequest(BaseModel):
    """Request to redo the last edit on a file against its pre-edit content"""

    target_file: str
    mode: ApplyMode | None = None


class AcceptRequest(BaseModel):
    target_file: str


class CheckRequest(BaseModel):
    """Request to lint an update snippet without applying it"""

    code_edit: str
    original_content: str = ""
    language: str | None = None
    target_file: str | None = None


class CheckResponse(BaseModel):
    language: str
    segments: list[Segment]
    warnings: list[EditWarning]
    noop: bool
