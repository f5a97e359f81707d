"""JSON-RPC client for the storefront MCP catalog endpoint."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Mapping

import httpx

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Base class for failures talking to a remote catalog."""


class CatalogTransportError(CatalogError):
    """Network failure, timeout or non-JSON-RPC HTTP error."""


class CatalogProtocolError(CatalogError):
    """The remote replied with a payload that does not follow the wire format."""


class RemoteToolError(CatalogError):
    """The remote tool replied with a JSON-RPC ``error`` object."""

    def __init__(self, message: str, *, store: str | None = None, method: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.store = store
        self.method = method


_CART_INVALID_MARKERS = ("not found", "invalid")


def is_invalid_cart_error(exc: BaseException) -> bool:
    """Return ``True`` when a remote error says the cart itself is gone or invalid.

    Errors about the merchandise in a cart mutation leave the cart usable.
    """

    if not isinstance(exc, RemoteToolError):
        return False
    message = exc.message.lower()
    if "cart" not in message:
        return False
    return any(marker in message for marker in _CART_INVALID_MARKERS)


def build_envelope(method: str, arguments: Mapping[str, Any]) -> dict[str, Any]:
    """Return the JSON-RPC 2.0 ``tools/call`` request body."""

    return {
        "jsonrpc": "2.0",
        "id": int(time.time() * 1000),
        "method": "tools/call",
        "params": {"name": method, "arguments": dict(arguments)},
    }


def unwrap_response(payload: Any) -> Any:
    """Extract the double-encoded tool result from a JSON-RPC reply.

    The reply is ``{"result": {"content": [{"text": "<json>"}]}}`` where the
    text itself is a JSON document, or ``{"error": {"message": ...}}``.
    """

    if not isinstance(payload, dict):
        raise CatalogProtocolError("MCP response is not a JSON object")

    error = payload.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else None
        raise RemoteToolError(message or "MCP error")

    try:
        text = payload["result"]["content"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise CatalogProtocolError("MCP response is missing result content") from exc

    try:
        return json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        raise CatalogProtocolError("MCP result content is not valid JSON") from exc


class CatalogGateway:
    """Calls ``https://{store}/api/mcp`` tools over a shared HTTP client."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        scheme: str = "https",
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._scheme = scheme

    def endpoint(self, store: str) -> str:
        """Return the MCP endpoint URL for a store domain."""

        return f"{self._scheme}://{store}/api/mcp"

    async def call(self, store: str, method: str, args: Mapping[str, Any]) -> Any:
        """Invoke a remote tool and return its decoded JSON result."""

        logger.debug("Calling %s on %s", method, store)
        try:
            response = await self._client.post(
                self.endpoint(store),
                json=build_envelope(method, args),
                headers={"content-type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise CatalogTransportError(
                f"Failed to reach catalog at {store}: {exc}"
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            if response.is_error:
                raise CatalogTransportError(
                    f"Catalog at {store} returned HTTP {response.status_code}"
                ) from exc
            raise CatalogProtocolError(f"Catalog at {store} returned non-JSON body") from exc

        try:
            return unwrap_response(payload)
        except RemoteToolError as exc:
            exc.store = store
            exc.method = method
            logger.info("Remote tool %s on %s failed: %s", method, store, exc.message)
            raise

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        """Release the underlying HTTP connection pool."""

        await self._client.aclose()


__all__ = [
    "CatalogError",
    "CatalogGateway",
    "CatalogProtocolError",
    "CatalogTransportError",
    "RemoteToolError",
    "build_envelope",
    "is_invalid_cart_error",
    "unwrap_response",
]
