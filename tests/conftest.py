"""Pytest fixtures shared across all test modules.

Provides a stub of the hosted apply service (an aiohttp.web app on a local
port), a scripted in-process apply client, and an isolated ConfigManager.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Awaitable, Callable

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from edit_applier.models.edit import ApplyMode, ApplyResult, ApplyStatus, Diagnostic
from edit_applier.services.config_manager import ConfigManager


def _config(base_url: str, root: Path | str, **apply_overrides) -> dict:
    apply_cfg = {
        "apiKey": "test-key",
        "baseUrl": base_url,
        "model": "morph-v3-fast",
        "reapplyModel": "morph-v3-large",
        "embeddingModel": "morph-embedding-v2",
        "rerankModel": "morph-rerank-v2",
        "endpoint": "chat",
        "mode": "blocking",
        "timeoutSeconds": 5,
        "streamTimeoutSeconds": 5,
    }
    apply_cfg.update(apply_overrides)
    return {
        "apply": apply_cfg,
        "retry": {"maxAttempts": 3, "baseDelaySeconds": 0},
        "reapply": {"maxAttempts": 3},
        "workspace": {"root": str(root)},
    }


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture()
def make_config(workspace: Path) -> Callable[..., dict]:
    """Build a config dict pointing at a base URL and the test workspace."""

    def factory(base_url: str = "http://127.0.0.1:9/v1", **apply_overrides) -> dict:
        return _config(base_url, workspace, **apply_overrides)

    return factory


@pytest.fixture()
def apply_service():
    """Start a stub apply service with the given POST handlers.

    Usage::

        async with apply_service({"/chat/completions": handler}) as base_url:
            ...

    Handler paths are relative to the ``/v1`` base URL.
    """

    @asynccontextmanager
    async def start(handlers: dict[str, Callable[[web.Request], Awaitable[web.StreamResponse]]]):
        app = web.Application()
        for path, handler in handlers.items():
            app.router.add_post(f"/v1{path}", handler)
        server = TestServer(app)
        await server.start_server()
        try:
            yield f"http://{server.host}:{server.port}/v1"
        finally:
            await server.close()

    return start


@pytest.fixture()
def sse_writer():
    """Write OpenAI-style streaming chunks; omit the terminator to simulate a dropped stream."""

    async def write(request: web.Request, chunks: list[str], terminate: bool = True) -> web.StreamResponse:
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for chunk in chunks:
            data = {"choices": [{"index": 0, "delta": {"content": chunk}, "finish_reason": None}]}
            await response.write(f"data: {json.dumps(data)}\n\n".encode("utf-8"))
        if terminate:
            final = {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]}
            await response.write(f"data: {json.dumps(final)}\n\n".encode("utf-8"))
            await response.write(b"data: [DONE]\n\n")
        await response.write_eof()
        return response

    return write


class FakeApplyClient:
    """In-process stand-in for ApplyClient that replays scripted results."""

    base_url = "http://apply.test/v1"
    endpoint = "chat"
    embedding_model = "morph-embedding-v2"
    rerank_model = "morph-rerank-v2"

    def __init__(self, results: list[ApplyResult] | None = None):
        self.results = list(results or [])
        self.calls: list[dict] = []

    def queue_success(self, merged: str):
        self.results.append(ApplyResult(merged_content=merged, status=ApplyStatus.SUCCESS))

    def queue_failure(self, category: str, message: str = "upstream failure", status_code: int | None = None):
        self.results.append(
            ApplyResult(
                status=ApplyStatus.FAILURE,
                diagnostic=Diagnostic(category=category, message=message, status_code=status_code),
            )
        )

    async def apply(self, payload_text, mode=ApplyMode.BLOCKING, model=None, on_chunk=None):
        self.calls.append({"payload": payload_text, "mode": mode, "model": model})
        result = self.results.pop(0)
        if result.ok and mode == ApplyMode.STREAMING and on_chunk:
            for line in result.merged_content.splitlines(keepends=True):
                await on_chunk(line)
        return result

    async def embed(self, texts, model=None):
        self.calls.append({"embed": texts, "model": model})
        return [[float(len(text)), 1.0] for text in texts]

    async def rerank(self, query, documents, top_n=None, model=None):
        self.calls.append({"rerank": query, "model": model})
        scored = [
            {"index": i, "relevance_score": float(query in doc), "document": doc} for i, doc in enumerate(documents)
        ]
        scored.sort(key=lambda r: r["relevance_score"], reverse=True)
        return scored[:top_n] if top_n else scored


@pytest.fixture()
def fake_client() -> FakeApplyClient:
    return FakeApplyClient()


@pytest.fixture()
def config_manager(tmp_path: Path, monkeypatch, workspace: Path) -> ConfigManager:
    """Isolated ConfigManager singleton rooted at the test workspace."""
    monkeypatch.setenv("EDIT_APPLIER_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.delenv("APPLY_API_KEY", raising=False)
    ConfigManager.reset_instance()
    manager = ConfigManager.get_instance()
    manager.save_config(
        {
            "apply": {"apiKey": "sk-test-0123456789"},
            "retry": {"baseDelaySeconds": 0},
            "workspace": {"root": str(workspace)},
        }
    )
    yield manager
    ConfigManager.reset_instance()


@pytest.fixture(autouse=True)
def _reset_sse_app_status():
    """sse-starlette keeps a module-level exit event bound to the first event loop."""
    from sse_starlette import sse

    app_status = getattr(sse, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
    yield
