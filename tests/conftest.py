import io
import json
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi import Depends
from httpx import AsyncClient, ASGITransport
from PIL import Image

from adgen.api.dependencies import get_backend_client, get_bearer_token, get_orchestrator, run_registry
from adgen.core.http import BackendClient
from adgen.main import app
from adgen.pipeline.orchestrator import PipelineOrchestrator
from adgen.pipeline.poller import JobPoller

BACKEND_URL = "http://backend.test/api"


def make_png(width: int = 8, height: int = 8, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def envelope(response: Any) -> Dict[str, Any]:
    return {"success": True, "response": response, "error": None}


class FakeBackend:
    """
    Canned backend behind httpx.MockTransport.

    Routes are keyed on (method, path) with the /api prefix removed. Each
    route holds a queue of replies; the last one repeats. A reply is a
    JSON body, a (status, body) tuple, an httpx exception instance, or a
    callable taking the request.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, *replies: Any) -> "FakeBackend":
        self.routes[(method, path)] = list(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]

        replies = self.routes.get((request.method, path))
        if not replies:
            return httpx.Response(404, json={"message": f"no route for {request.method} {path}"})

        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        if isinstance(reply, tuple):
            status, body = reply
            return httpx.Response(status, json=body)
        return httpx.Response(200, json=reply)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        full = "/api" + path
        return [r for r in self.requests if r.method == method and r.url.path == full]

    def json_body(self, method: str, path: str, index: int = 0) -> Any:
        return json.loads(self.calls(method, path)[index].content)

    def client(self, token: str = "test-token") -> BackendClient:
        return BackendClient(
            base_url=BACKEND_URL,
            token=token,
            transport=httpx.MockTransport(self.handler)
        )


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def happy_backend(fake_backend: FakeBackend) -> FakeBackend:
    """Backend answering a full successful run for a 50-point model."""
    return (
        fake_backend
        .add("GET", "/points/balance", envelope({"availablePoints": 100}))
        .add("POST", "/points/use", envelope({"id": 1, "amount": 50, "balanceBefore": 100, "balanceAfter": 50}))
        .add("POST", "/files", envelope({"fileId": 9}))
        .add("POST", "/generate/remove-bg", envelope({"jobId": "job-1"}))
        .add(
            "GET", "/generate/jobs/job-1",
            envelope({"jobId": "job-1", "status": "RUNNING"}),
            envelope({"jobId": "job-1", "status": "SUCCEEDED", "resultFileId": 10})
        )
        .add(
            "POST", "/compose/compose",
            envelope({"status": "SUCCEEDED", "resultFileUrl": "https://cdn.test/url/11", "resultFileId": 11})
        )
    )


@pytest.fixture
async def client(fake_backend: FakeBackend) -> AsyncGenerator[AsyncClient, None]:
    async def backend_override(token: Optional[str] = Depends(get_bearer_token)):
        async with fake_backend.client(token=token) as backend:
            yield backend

    def orchestrator_override(backend: BackendClient = Depends(get_backend_client)):
        orchestrator = PipelineOrchestrator.from_backend(backend)
        orchestrator.poller = JobPoller(orchestrator.jobs.get_job, interval_seconds=0)
        return orchestrator

    app.dependency_overrides[get_backend_client] = backend_override
    app.dependency_overrides[get_orchestrator] = orchestrator_override
    # Trigger lifespan events (startup/shutdown)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()
    run_registry._active.clear()
