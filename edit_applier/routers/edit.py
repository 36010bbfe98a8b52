"""Edit apply API endpoints"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from edit_applier.models.edit import (
    AcceptRequest,
    ApplyEditRequest,
    ApplyMode,
    CheckRequest,
    CheckResponse,
    Diagnostic,
    EditOutcome,
    ReapplyRequest,
)
from edit_applier.models.retrieval import StreamEvent
from edit_applier.services.config_manager import ConfigManager
from edit_applier.services.errors import InvalidInput
from edit_applier.services.markers import check_snippet, is_noop_snippet, language_for_path, split_segments
from edit_applier.services.orchestrator import EditOrchestrator, SessionRegistry, session_limits

router = APIRouter()

# Sessions outlive a single request so a later /reapply can find the pre-edit content
sessions = SessionRegistry()


def get_orchestrator() -> EditOrchestrator:
    config = ConfigManager.get_instance().get_config()
    sessions.configure(*session_limits(config))
    return EditOrchestrator(config, sessions=sessions)


def _raise_for_invalid(outcome: EditOutcome) -> EditOutcome:
    if outcome.category == InvalidInput.category:
        raise HTTPException(status_code=400, detail=outcome.message)
    return outcome


@router.post("/apply", response_model=EditOutcome)
async def apply_edit(request: ApplyEditRequest) -> EditOutcome:
    """Apply a sparse edit to a file and wait for the merged result"""
    orchestrator = get_orchestrator()
    outcome = await orchestrator.apply_edit(
        request.target_file,
        request.instructions,
        request.code_edit,
        mode=request.mode,
    )
    return _raise_for_invalid(outcome)


@router.post("/stream")
async def apply_edit_stream(request: ApplyEditRequest):
    """Apply a sparse edit, streaming the merged content as it is generated (SSE)"""
    orchestrator = get_orchestrator()
    queue: asyncio.Queue = asyncio.Queue()

    async def on_chunk(chunk: str):
        await queue.put(StreamEvent(type="content", chunk=chunk))

    async def on_retry(attempt: int, diagnostic: Diagnostic):
        # Chunks sent so far belong to a discarded attempt
        await queue.put(
            StreamEvent(type="retry", metadata={"attempt": attempt, "category": diagnostic.category})
        )

    async def run() -> EditOutcome:
        try:
            return await orchestrator.apply_edit(
                request.target_file,
                request.instructions,
                request.code_edit,
                mode=ApplyMode.STREAMING,
                on_chunk=on_chunk,
                on_retry=on_retry,
            )
        finally:
            await queue.put(None)

    async def event_generator():
        task = asyncio.create_task(run())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield {"event": "message", "data": event.model_dump_json()}

            outcome = await task
            if outcome.success:
                event = StreamEvent(type="done", done=True, metadata=outcome.model_dump(mode="json"))
            else:
                event = StreamEvent(
                    type="error",
                    done=True,
                    error=outcome.message,
                    metadata=outcome.model_dump(mode="json"),
                )
            yield {"event": "message", "data": event.model_dump_json()}
        finally:
            # Client went away: cancel the apply; nothing is written
            if not task.done():
                task.cancel()

    return EventSourceResponse(event_generator())


@router.post("/reapply", response_model=EditOutcome)
async def reapply_edit(request: ReapplyRequest) -> EditOutcome:
    """Redo the last edit on a file against its pre-edit content with the stronger model"""
    orchestrator = get_orchestrator()
    outcome = await orchestrator.reapply(request.target_file, mode=request.mode)
    return _raise_for_invalid(outcome)


@router.post("/accept")
async def accept_edit(request: AcceptRequest) -> dict:
    """Mark the last edit on a file as final"""
    discarded = get_orchestrator().accept(request.target_file)
    return {"success": True, "discarded": discarded}


@router.post("/check", response_model=CheckResponse)
async def check_edit(request: CheckRequest) -> CheckResponse:
    """Lint an update snippet's truncation markers without calling the service"""
    language = request.language or language_for_path(request.target_file or "")
    return CheckResponse(
        language=language,
        segments=split_segments(request.code_edit),
        warnings=check_snippet(request.original_content, request.code_edit, language),
        noop=is_noop_snippet(request.code_edit),
    )
