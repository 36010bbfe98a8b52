"""
Apply Client - Network exchange with the hosted apply / embedding / rerank API
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import aiohttp

from edit_applier.models.edit import ApplyMode, ApplyResult, ApplyStatus, Diagnostic
from edit_applier.utils.logger import setup_logger

from .errors import (
    ApplyError,
    ApplyTimeoutError,
    AuthError,
    ServiceUnreachableError,
    StreamInterrupted,
    TransientServerError,
    TruncatedOutputError,
    error_for_status,
)
from .request_builder import build_chat_payload, build_completion_payload

logger = setup_logger(__name__)

DEFAULT_BASE_URL = "https://api.morphllm.com/v1"

ChunkCallback = Callable[[str], Awaitable[None]]


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class ApplyClient:
    """Client for the hosted apply service.

    ``apply`` never raises for upstream failures; they come back as an
    ``ApplyResult`` with ``status=failure`` and a diagnostic. Retrying is the
    caller's business.
    """

    def __init__(self, config: dict[str, Any]):
        self.config = config
        cfg = config.get("apply", {})
        self.base_url = (cfg.get("baseUrl") or DEFAULT_BASE_URL).rstrip("/")
        self.model = cfg.get("model", "morph-v3-fast")
        self.endpoint = cfg.get("endpoint", "chat")
        self.embedding_model = cfg.get("embeddingModel", "morph-embedding-v2")
        self.rerank_model = cfg.get("rerankModel", "morph-rerank-v2")
        self.timeout_seconds = float(cfg.get("timeoutSeconds", 60))
        self.stream_timeout_seconds = float(cfg.get("streamTimeoutSeconds", 120))
        self._api_key = cfg.get("apiKey", "")

    # ========== Config Helpers ==========

    def _headers(self) -> dict[str, str]:
        """Bearer auth headers. Raises AuthError if no key is configured."""
        if not self._api_key:
            raise AuthError("Apply API key not configured")
        return {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}

    def _apply_path(self) -> str:
        return "/completions" if self.endpoint == "completions" else "/chat/completions"

    def _apply_body(self, payload_text: str, model: str, stream: bool) -> dict[str, Any]:
        if self.endpoint == "completions":
            return build_completion_payload(model, payload_text, stream=stream)
        return build_chat_payload(model, payload_text, stream=stream)

    # ========== HTTP ==========

    @asynccontextmanager
    async def _request(self, path: str, body: dict[str, Any], timeout_seconds: float):
        """POST to the service and yield the response; non-2xx statuses raise ApplyError"""
        url = f"{self.base_url}{path}"
        headers = self._headers()
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=body, headers=headers) as response:
                    if not 200 <= response.status < 300:
                        error_text = await response.text()
                        logger.warning("Apply API error (HTTP %s) from %s", response.status, path)
                        raise error_for_status(
                            response.status,
                            f"Apply API error ({response.status}): {error_text[:500]}",
                            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                        )
                    yield response
        except asyncio.TimeoutError:
            raise ApplyTimeoutError(f"Request to {path} timed out after {timeout_seconds:g}s")
        except aiohttp.ClientError as e:
            raise ServiceUnreachableError(f"Could not reach apply service: {e}")

    async def _request_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        async with self._request(path, body, self.timeout_seconds) as response:
            try:
                data = await response.json(content_type=None)
            except json.JSONDecodeError:
                raise TransientServerError(f"Apply service returned a non-JSON body for {path}")
        if not isinstance(data, dict):
            raise TransientServerError(f"Apply service returned a malformed body for {path}")
        return data

    # ========== Response Parsers ==========

    def _first_choice(self, data: Any) -> dict[str, Any]:
        """choices[0] of a completion or chunk; anything else is a malformed reply"""
        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise TransientServerError("No valid response from apply API")
        return choices[0]

    def _parse_completion(self, data: dict[str, Any]) -> str:
        """Merged content from a non-streaming completion; cut-off generations are rejected"""
        choice = self._first_choice(data)
        if choice.get("finish_reason") == "length":
            raise TruncatedOutputError("Apply output was truncated (finish_reason=length)")
        message = choice.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
        if isinstance(choice.get("text"), str):
            return choice["text"]
        raise TransientServerError("No valid response from apply API")

    def _parse_stream_line(self, line_text: str) -> tuple[str | None, bool]:
        """Parse one SSE line into (delta, finished)"""
        if not line_text.startswith("data:"):
            return None, False
        data_str = line_text[5:].strip()
        if data_str == "[DONE]":
            return None, True
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            return None, False

        # Usage-only chunks carry no choices
        if isinstance(data, dict) and not data.get("choices"):
            return None, False
        choice = self._first_choice(data)
        finish_reason = choice.get("finish_reason")
        if finish_reason == "length":
            raise TruncatedOutputError("Apply output was truncated (finish_reason=length)")

        if "delta" in choice:
            # Chat chunks always carry a delta object, possibly empty
            if not isinstance(choice["delta"], dict):
                raise TransientServerError("Malformed stream chunk from apply API")
            delta = choice["delta"].get("content")
        else:
            delta = choice.get("text")
        if delta is not None and not isinstance(delta, str):
            raise TransientServerError("Malformed stream chunk from apply API")
        return delta or None, finish_reason == "stop"

    # ========== Apply ==========

    async def iter_apply(self, payload_text: str, model: str | None = None) -> AsyncIterator[str]:
        """Yield merged-content chunks in arrival order.

        Raises StreamInterrupted when the body ends (or the connection drops)
        before the service signals completion.
        """
        body = self._apply_body(payload_text, model or self.model, stream=True)
        finished = False
        async with self._request(self._apply_path(), body, self.stream_timeout_seconds) as response:
            try:
                async for line in response.content:
                    line_text = line.decode("utf-8").strip()
                    delta, done = self._parse_stream_line(line_text)
                    if delta:
                        yield delta
                    if done:
                        finished = True
                        if line_text[5:].strip() == "[DONE]":
                            break
            except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError) as e:
                raise StreamInterrupted(f"Stream interrupted: {e}")
        if not finished:
            raise StreamInterrupted("Stream ended before the service signalled completion")

    async def _apply_blocking(self, payload_text: str, model: str) -> str:
        body = self._apply_body(payload_text, model, stream=False)
        data = await self._request_json(self._apply_path(), body)
        return self._parse_completion(data)

    async def apply(
        self,
        payload_text: str,
        mode: ApplyMode = ApplyMode.BLOCKING,
        model: Optional[str] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> ApplyResult:
        """Send the payload and return the merged file (or a failure diagnostic)"""
        model = model or self.model
        logger.info("Applying edit with %s (%s, payload %d chars)", model, mode.value, len(payload_text))
        try:
            if mode == ApplyMode.STREAMING:
                parts: list[str] = []
                async for chunk in self.iter_apply(payload_text, model):
                    parts.append(chunk)
                    if on_chunk:
                        await on_chunk(chunk)
                merged = "".join(parts)
            else:
                merged = await self._apply_blocking(payload_text, model)
        except ApplyError as e:
            logger.warning("Apply failed (%s): %s", e.category, e.message)
            return failure_result(e)

        logger.info("Received merged content (length: %d chars)", len(merged))
        return ApplyResult(merged_content=merged, status=ApplyStatus.SUCCESS)

    # ========== Embedding / Rerank ==========

    async def embed(self, texts: list[str], model: str | None = None) -> list[list[float]]:
        """Embed texts with the hosted embedding model"""
        body = {"model": model or self.embedding_model, "input": texts}
        data = await self._request_json("/embeddings", body)
        items = [item for item in data.get("data") or [] if isinstance(item, dict) and "embedding" in item]
        items.sort(key=lambda item: item.get("index", 0))
        if len(items) != len(texts):
            raise TransientServerError(f"Expected {len(texts)} embeddings, got {len(items)}")
        return [item["embedding"] for item in items]

    async def rerank(
        self,
        query: str,
        documents: list[str],
        top_n: int | None = None,
        model: str | None = None,
    ) -> list[dict[str, Any]]:
        """Score documents against a query, best first"""
        body: dict[str, Any] = {
            "model": model or self.rerank_model,
            "query": query,
            "documents": documents,
        }
        if top_n is not None:
            body["top_n"] = top_n
        data = await self._request_json("/rerank", body)

        results = []
        for item in data.get("results") or []:
            if not isinstance(item, dict):
                raise TransientServerError("Malformed rerank result from apply API")
            index = item.get("index", 0)
            document = item.get("document")
            if isinstance(document, dict):
                document = document.get("text")
            if document is None and 0 <= index < len(documents):
                document = documents[index]
            results.append(
                {
                    "index": index,
                    "relevance_score": float(item.get("relevance_score", 0.0)),
                    "document": document,
                }
            )
        results.sort(key=lambda r: r["relevance_score"], reverse=True)
        return results


def failure_result(error: ApplyError) -> ApplyResult:
    """Wrap an ApplyError into a failed ApplyResult"""
    return ApplyResult(
        status=ApplyStatus.FAILURE,
        diagnostic=Diagnostic(
            category=error.category,
            message=error.message,
            status_code=error.status_code,
            retry_after=getattr(error, "retry_after", None),
        ),
    )
