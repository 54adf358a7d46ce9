"""
Backend HTTP Client

Thin wrapper over httpx.AsyncClient shared by every backend-facing
client. Handles the bearer token, the {success, response, error}
envelope, error message extraction and conversion of transport
failures into the caller's ExternalAPIError subclass.
"""

from typing import Any, Dict, Optional, Type

import httpx

from adgen.core.config import settings
from adgen.core.exceptions import ExternalAPIError
from adgen.core.logging import get_logger
from adgen.core.metrics import record_backend_call

logger = get_logger(__name__)


def extract_error_message(payload: Any, fallback: str) -> str:
    """Pick the most specific message the backend sent."""
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if payload.get("message"):
            return str(payload["message"])
    return fallback


def extract_error_code(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            code = error.get("errorCode") or error.get("code")
            if code:
                return str(code)
        if payload.get("code"):
            return str(payload["code"])
    return None


def is_envelope(payload: Any) -> bool:
    return isinstance(payload, dict) and "success" in payload and "response" in payload


class BackendClient:
    """
    Async client for the marketplace backend.

    One instance per caller session; the token is forwarded as-is.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.BACKEND_TIMEOUT_SECONDS

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=transport
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def aclose(self):
        await self._client.aclose()

    async def get(self, path: str, error_cls: Type[ExternalAPIError] = ExternalAPIError) -> Any:
        return await self.request("GET", path, error_cls=error_cls)

    async def post(
        self,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        error_cls: Type[ExternalAPIError] = ExternalAPIError
    ) -> Any:
        return await self.request("POST", path, json=json, files=files, timeout=timeout, error_cls=error_cls)

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        error_cls: Type[ExternalAPIError] = ExternalAPIError
    ) -> Any:
        """
        Send a request and return the (unwrapped) JSON body.

        Raises:
            error_cls: on transport failure, non-2xx status, an
                unparseable body or a `success: false` envelope.
        """
        service = error_cls.service

        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                files=files,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT
            )
        except httpx.TimeoutException:
            record_backend_call(service, "timeout")
            logger.warning("backend_timeout", method=method, path=path)
            raise error_cls(f"{method} {path} timed out")
        except httpx.TransportError as e:
            record_backend_call(service, "error")
            logger.warning("backend_unreachable", method=method, path=path, error=str(e))
            raise error_cls(f"{method} {path} failed: {e}")

        record_backend_call(service, response.status_code)

        try:
            payload = response.json() if response.content else None
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = extract_error_message(
                payload,
                f"{method} {path} failed ({response.status_code})"
            )
            logger.warning(
                "backend_error_response",
                method=method,
                path=path,
                http_status=response.status_code,
                error=message
            )
            exc = error_cls(message, http_status=response.status_code)
            error_code = extract_error_code(payload)
            if error_code:
                exc.details["error_code"] = error_code
            raise exc

        if payload is None:
            raise error_cls(
                f"{method} {path} returned an unreadable body",
                http_status=response.status_code
            )

        if is_envelope(payload):
            if not payload.get("success"):
                exc = error_cls(
                    extract_error_message(payload, f"{method} {path} was rejected"),
                    http_status=response.status_code
                )
                error_code = extract_error_code(payload)
                if error_code:
                    exc.details["error_code"] = error_code
                raise exc
            return payload.get("response")

        return payload
