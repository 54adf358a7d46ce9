"""
FastAPI Dependencies for the Generation API

Provides dependency injection for:
- Backend client (per request, carries the caller's bearer token)
- Pipeline orchestrator (per request)
- Session key + run registry (one in-flight run per session)
"""

import hashlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional, Set

from fastapi import Depends, Request

from adgen.core.exceptions import PipelineAlreadyRunningError
from adgen.core.http import BackendClient
from adgen.core.logging import get_logger
from adgen.pipeline.orchestrator import PipelineOrchestrator

logger = get_logger(__name__)


def get_bearer_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, if any."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def get_session_key(request: Request, token: Optional[str] = Depends(get_bearer_token)) -> str:
    """Stable per-session key; the raw token is never stored."""
    if token:
        return "token:" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]
    host = request.client.host if request.client else "unknown"
    return f"anonymous:{host}"


class RunRegistry:
    """
    Sessions that currently have a run in flight.

    The orchestrator does not lock; this is the caller-side guard.
    """

    def __init__(self):
        self._active: Set[str] = set()

    def is_active(self, session_key: str) -> bool:
        return session_key in self._active

    @asynccontextmanager
    async def claim(self, session_key: str):
        if session_key in self._active:
            logger.warning("run_rejected_session_busy")
            raise PipelineAlreadyRunningError()
        self._active.add(session_key)
        try:
            yield
        finally:
            self._active.discard(session_key)


run_registry = RunRegistry()


def get_run_registry() -> RunRegistry:
    return run_registry


async def get_backend_client(
    token: Optional[str] = Depends(get_bearer_token)
) -> AsyncGenerator[BackendClient, None]:
    async with BackendClient(token=token) as backend:
        yield backend


def get_orchestrator(backend: BackendClient = Depends(get_backend_client)) -> PipelineOrchestrator:
    return PipelineOrchestrator.from_backend(backend)
