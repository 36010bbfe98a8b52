"""
Edit Orchestrator - read file, build payload, apply, write back, reapply on request
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

from edit_applier.models.edit import (
    ApplyMode,
    ApplyResult,
    ApplyStatus,
    Diagnostic,
    EditOutcome,
    EditRequest,
    EditSession,
    EditWarning,
)
from edit_applier.utils.logger import setup_logger

from .apply_client import ApplyClient, ChunkCallback
from .diff_generator import DiffGenerator
from .errors import InvalidInput, MisappliedEditError, StorageError, ValidationError
from .file_store import FileStore
from .markers import check_snippet, is_noop_snippet, language_for_path
from .request_builder import build_request

logger = setup_logger(__name__)

RETRYABLE_CATEGORIES = frozenset({"rate_limit", "server_error", "connection", "stream_interrupted"})

DEFAULT_MAX_SESSIONS = 100
DEFAULT_SESSION_TTL = 3600.0

RetryCallback = Callable[[int, Diagnostic], Awaitable[None]]


class SessionRegistry:
    """Edit sessions and per-target locks, shared across orchestrator instances.

    Sessions are kept in least-recently-used order. Once more than
    ``max_sessions`` are held the oldest is evicted, and a session untouched
    for ``ttl_seconds`` is treated as abandoned. A target's lock exists only
    while some call is holding or waiting for it.
    """

    def __init__(
        self,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        ttl_seconds: float = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_sessions = max_sessions
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: OrderedDict[str, tuple[float, EditSession]] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def configure(self, max_sessions: int, ttl_seconds: float):
        self.max_sessions = max(1, max_sessions)
        self.ttl_seconds = ttl_seconds
        self._evict()

    def get(self, key: str) -> EditSession | None:
        self._evict()
        entry = self._sessions.get(key)
        if entry is None:
            return None
        self._sessions[key] = (self._clock(), entry[1])
        self._sessions.move_to_end(key)
        return entry[1]

    def put(self, key: str, session: EditSession):
        self._sessions[key] = (self._clock(), session)
        self._sessions.move_to_end(key)
        self._evict()

    def discard(self, key: str) -> bool:
        return self._sessions.pop(key, None) is not None

    @asynccontextmanager
    async def lock(self, key: str):
        """Hold the per-target lock; it is dropped once nobody holds or awaits it"""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    def _evict(self):
        if self.ttl_seconds > 0:
            cutoff = self._clock() - self.ttl_seconds
            expired = [key for key, (touched, _) in self._sessions.items() if touched <= cutoff]
            for key in expired:
                logger.info("Dropping abandoned edit session for %s", self._sessions[key][1].target_identifier)
                del self._sessions[key]
        while len(self._sessions) > self.max_sessions:
            _, (_, session) = self._sessions.popitem(last=False)
            logger.info("Evicting edit session for %s", session.target_identifier)

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def lock_count(self) -> int:
        return len(self._locks)


class EditOrchestrator:
    """Top-level apply workflow invoked by an agent's edit tool.

    Concurrent calls against the same target are serialised by a per-target
    lock; the file is only written once a complete, successful merge has
    been received.
    """

    def __init__(
        self,
        config: dict[str, Any],
        store: Optional[FileStore] = None,
        client: Optional[ApplyClient] = None,
        sessions: Optional[SessionRegistry] = None,
    ):
        self.config = config
        apply_cfg = config.get("apply", {})
        retry_cfg = config.get("retry", {})

        self.client = client or ApplyClient(config)
        self.store = store or FileStore(config.get("workspace", {}).get("root", "."))
        self.sessions = sessions if sessions is not None else SessionRegistry(*session_limits(config))
        self.diff_generator = DiffGenerator()

        self.default_mode = ApplyMode(apply_cfg.get("mode", ApplyMode.BLOCKING.value))
        self.reapply_model = apply_cfg.get("reapplyModel")
        self.max_attempts = max(1, int(retry_cfg.get("maxAttempts", 3)))
        self.base_delay = float(retry_cfg.get("baseDelaySeconds", 2.0))
        # Apply plus reapplies, per session
        self.max_session_attempts = max(1, int(config.get("reapply", {}).get("maxAttempts", 3)))

    # ========== Public API ==========

    async def apply_edit(
        self,
        target: str,
        instructions: str,
        code_edit: str,
        mode: ApplyMode | None = None,
        on_chunk: ChunkCallback | None = None,
        on_retry: RetryCallback | None = None,
    ) -> EditOutcome:
        """Merge ``code_edit`` into the current content of ``target`` and persist it"""
        try:
            key = self._key(target)
        except StorageError as e:
            return self._failure(target, e.category, f"File could not be read: {e.message}")

        async with self.sessions.lock(key):
            try:
                original, exists = self.store.read(target)
            except StorageError as e:
                return self._failure(target, e.category, f"File could not be read: {e.message}")

            session = EditSession(
                target_identifier=target,
                original_content=original,
                instructions=instructions,
                code_edit=code_edit,
                created=not exists,
            )
            self.sessions.put(key, session)
            return await self._attempt(session, mode, None, on_chunk, on_retry)

    async def reapply(
        self,
        target: str,
        mode: ApplyMode | None = None,
        on_chunk: ChunkCallback | None = None,
        on_retry: RetryCallback | None = None,
    ) -> EditOutcome:
        """Redo the session's edit against the pre-edit content with the reapply model.

        Used when the previous merge succeeded but did not do what the caller
        intended. Bounded by ``reapply.maxAttempts``; past that the session is
        dropped and the file is left as it is.
        """
        try:
            key = self._key(target)
        except StorageError as e:
            return self._failure(target, e.category, e.message)

        async with self.sessions.lock(key):
            session = self.sessions.get(key)
            if session is None:
                return self._failure(
                    target,
                    ValidationError.category,
                    f"No edit to reapply for {target}; apply an edit first",
                )

            if session.attempt_count >= self.max_session_attempts:
                self.sessions.discard(key)
                error = MisappliedEditError(
                    f"Edit to {target} still not applied as intended after {session.attempt_count} "
                    "attempts; manual review needed"
                )
                logger.warning("%s", error.message)
                return self._failure(target, error.category, error.message, attempts=session.attempt_count)

            logger.info(
                "Reapplying edit to %s (attempt %d/%d)",
                target,
                session.attempt_count + 1,
                self.max_session_attempts,
            )
            return await self._attempt(session, mode, self.reapply_model, on_chunk, on_retry)

    def accept(self, target: str) -> bool:
        """Caller is satisfied with the last merge; forget the session"""
        try:
            return self.sessions.discard(self._key(target))
        except StorageError:
            return False

    def session(self, target: str) -> EditSession | None:
        try:
            return self.sessions.get(self._key(target))
        except StorageError:
            return None

    # ========== Workflow ==========

    def _key(self, target: str) -> str:
        return str(self.store.resolve(target))

    def _build_payload(self, request: EditRequest) -> str:
        return build_request(request, prompt=self.client.endpoint == "completions")

    async def _attempt(
        self,
        session: EditSession,
        mode: ApplyMode | None,
        model: str | None,
        on_chunk: ChunkCallback | None,
        on_retry: RetryCallback | None,
    ) -> EditOutcome:
        target = session.target_identifier
        original = session.original_content
        session.attempt_count += 1
        warnings = check_snippet(original, session.code_edit, language_for_path(target))
        for warning in warnings:
            logger.warning("%s: %s", target, warning.message)

        if is_noop_snippet(session.code_edit):
            session.last_result = ApplyResult(merged_content=original, status=ApplyStatus.SUCCESS)
            return EditOutcome(
                success=True,
                message=f"{session.instructions}: nothing to change in {target}",
                target_file=target,
                attempts=session.attempt_count,
                warnings=warnings,
            )

        try:
            payload = self._build_payload(
                EditRequest(
                    target_identifier=target,
                    original_content=original,
                    update_snippet=session.code_edit,
                )
            )
        except InvalidInput as e:
            return self._failure(target, e.category, e.message, session.attempt_count, warnings)

        result = await self._apply_with_retry(payload, mode or self.default_mode, model, on_chunk, on_retry)
        session.last_result = result
        if not result.ok:
            diagnostic = result.diagnostic
            return self._failure(
                target,
                diagnostic.category,
                self._failure_message(diagnostic),
                session.attempt_count,
                warnings,
            )

        try:
            self.store.write(target, result.merged_content)
        except StorageError as e:
            return self._failure(
                target, e.category, f"File could not be written: {e.message}", session.attempt_count, warnings
            )

        diff = self.diff_generator.generate_diff(original, result.merged_content, target, session.code_edit)
        for hunk in diff.unrequested_hunks:
            warning = EditWarning(
                code="unrequested_change",
                message=f"Merged lines {hunk.new_start_line}-{hunk.new_end_line} do not appear in the update snippet",
                line=hunk.new_start_line,
            )
            logger.warning("%s: %s", target, warning.message)
            warnings.append(warning)
        summary = self.diff_generator.summarize(diff)
        if session.created:
            message = f"Created {target}: {session.instructions}"
        else:
            message = f"{session.instructions} ({summary} in {target})"
        if session.attempt_count > 1:
            message += f" [reapplied, attempt {session.attempt_count}]"

        return EditOutcome(
            success=True,
            message=message,
            target_file=target,
            attempts=session.attempt_count,
            created=session.created,
            diff=diff,
            warnings=warnings,
        )

    async def _apply_with_retry(
        self,
        payload: str,
        mode: ApplyMode,
        model: str | None,
        on_chunk: ChunkCallback | None,
        on_retry: RetryCallback | None,
    ) -> ApplyResult:
        """Call the apply service, backing off on rate limits and transient failures"""
        for attempt in range(1, self.max_attempts + 1):
            result = await self.client.apply(payload, mode, model=model, on_chunk=on_chunk)
            if result.ok:
                return result

            diagnostic = result.diagnostic
            if diagnostic.category not in RETRYABLE_CATEGORIES or attempt == self.max_attempts:
                return result

            if diagnostic.retry_after is not None:
                wait_time = diagnostic.retry_after
            else:
                wait_time = self.base_delay * (2 ** (attempt - 1))
            logger.info(
                "%s, retrying in %.1fs (attempt %d/%d)",
                diagnostic.category,
                wait_time,
                attempt + 1,
                self.max_attempts,
            )
            if on_retry:
                await on_retry(attempt + 1, diagnostic)
            await asyncio.sleep(wait_time)

        return result

    def _failure_message(self, diagnostic: Diagnostic) -> str:
        category = diagnostic.category
        if category == "auth":
            return "Apply service rejected the credentials; check the API key"
        if category == "bad_request":
            return f"Apply service rejected the request: {diagnostic.message[:200]}"
        if category == "rate_limit":
            return "Apply service rate limit exceeded; try again later"
        if category == "server_error":
            status = f" (HTTP {diagnostic.status_code})" if diagnostic.status_code else ""
            return f"Apply service failed{status}; try again later"
        if category == "connection":
            return "Could not reach the apply service"
        if category == "timeout":
            return "Apply service did not respond in time"
        if category == "stream_interrupted":
            return "Stream was interrupted before the merge completed; file left unchanged"
        if category == "truncated":
            return "Apply service output was truncated; file left unchanged"
        return diagnostic.message

    def _failure(
        self,
        target: str,
        category: str,
        message: str,
        attempts: int = 0,
        warnings: list[EditWarning] | None = None,
    ) -> EditOutcome:
        return EditOutcome(
            success=False,
            message=message,
            target_file=target,
            category=category,
            attempts=attempts,
            warnings=warnings or [],
        )


def session_limits(config: dict[str, Any]) -> tuple[int, float]:
    """(max sessions, idle TTL in seconds) from the reapply config section"""
    reapply_cfg = config.get("reapply", {})
    return (
        int(reapply_cfg.get("maxSessions", DEFAULT_MAX_SESSIONS)),
        float(reapply_cfg.get("sessionTtlSeconds", DEFAULT_SESSION_TTL)),
    )
