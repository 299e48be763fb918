"""
HTTP transport — JSON over httpx with typed failures.

    transport = HttpTransport.from_config(config)
    match await transport.request("GET", "/cart", headers=session.headers(identity)):
        case Ok(body): ...
        case Error(err): ...       # always a StorefrontError
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from kungfu import Result, Ok, Error

from storefront.config import StorefrontConfig
from storefront.errors import (
    StorefrontError,
    ValidationError,
    ConflictError,
    NotFoundError,
    SessionExpired,
    TransientNetworkError,
    ServerError,
)


logger = structlog.get_logger(__name__)

GATEWAY_STATUSES = frozenset({502, 503, 504})


# ═══════════════════════════════════════════════════════════════════════════════
# Response Classification
# ═══════════════════════════════════════════════════════════════════════════════


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _message(body: Any, response: httpx.Response) -> str:
    if isinstance(body, dict):
        for field in ("message", "error", "detail"):
            value = body.get(field)
            if isinstance(value, str) and value:
                return value
    if isinstance(body, str) and body:
        return body
    return f"Request failed: {response.status_code} {response.reason_phrase}"


def classify(response: httpx.Response) -> Result[Any, StorefrontError]:
    """
    Map an HTTP response onto the error taxonomy.

    400/422 → ValidationError     401 → SessionExpired
    404 → NotFoundError           409 → ConflictError
    502/503/504 → TransientNetworkError
    anything else non-2xx (429 and 500 included) → ServerError
    """
    status = response.status_code
    body = _decode(response)
    if 200 <= status < 300:
        return Ok(body)

    message = _message(body, response)
    if status in (400, 422):
        field = body.get("field") if isinstance(body, dict) else None
        return Error(ValidationError(message, status, body, field=field))
    if status == 401:
        return Error(SessionExpired(message, status, body))
    if status == 404:
        return Error(NotFoundError(message, status, body))
    if status == 409:
        return Error(ConflictError(message, status, body))
    if status in GATEWAY_STATUSES:
        return Error(TransientNetworkError(message, status, body))
    return Error(ServerError(message, status, body))


# ═══════════════════════════════════════════════════════════════════════════════
# Transport
# ═══════════════════════════════════════════════════════════════════════════════


class HttpTransport:
    """
    Thin async JSON client.

    Note: never raises for HTTP or network failures; both come back as
    Error(StorefrontError). Timeouts are the httpx client's.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: StorefrontConfig, **client_kwargs: Any) -> HttpTransport:
        """
        Build transport with its own AsyncClient.

        Example:
            HttpTransport.from_config(config, transport=httpx.ASGITransport(app))
        """
        client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout.total_seconds(),
            headers={"Content-Type": "application/json"},
            **client_kwargs,
        )
        return cls(client)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Result[Any, StorefrontError]:
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.ConnectError as e:
            logger.warning("http_connect_failed", method=method, path=path, error=str(e))
            return Error(TransientNetworkError(f"Could not reach server: {e}", request_sent=False))
        except httpx.TimeoutException as e:
            logger.warning("http_timeout", method=method, path=path, error=str(e))
            # A connect timeout never reached the server.
            sent = not isinstance(e, (httpx.ConnectTimeout, httpx.PoolTimeout))
            return Error(TransientNetworkError("Request timed out", timed_out=True, request_sent=sent))
        except httpx.TransportError as e:
            logger.warning("http_transport_failed", method=method, path=path, error=str(e))
            return Error(TransientNetworkError(f"Network error: {e}"))

        result = classify(response)
        match result:
            case Ok(_):
                logger.debug("http_ok", method=method, path=path, status=response.status_code)
            case Error(err):
                logger.info(
                    "http_error",
                    method=method,
                    path=path,
                    status=response.status_code,
                    kind=err.kind.name,
                    message=err.message,
                )
        return result

    async def get(self, path: str, *, headers: dict[str, str] | None = None) -> Result[Any, StorefrontError]:
        return await self.request("GET", path, headers=headers)

    async def post(self, path: str, json: Any = None, *, headers: dict[str, str] | None = None) -> Result[Any, StorefrontError]:
        return await self.request("POST", path, json=json, headers=headers)

    async def put(self, path: str, json: Any = None, *, headers: dict[str, str] | None = None) -> Result[Any, StorefrontError]:
        return await self.request("PUT", path, json=json, headers=headers)

    async def delete(self, path: str, *, headers: dict[str, str] | None = None) -> Result[Any, StorefrontError]:
        return await self.request("DELETE", path, headers=headers)

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = (
    "GATEWAY_STATUSES",
    "classify",
    "HttpTransport",
)
