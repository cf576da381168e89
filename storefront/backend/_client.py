"""
BackendClient — one httpx.AsyncClient for every collaborator service.

Every endpoint answers with the envelope

    {"success": bool, "message": str?, "data": T?}

`call()` unwraps it into Result[data, BackendError]. Transport failures,
HTTP errors, `success=false` and malformed bodies all come back as values.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx
from kungfu import Result, Ok, Error
from pydantic import BaseModel, ValidationError

from storefront._errors import BackendError, BackendErrorKind
from storefront.config import StorefrontConfig

logger = logging.getLogger(__name__)


class Envelope(BaseModel):
    success: bool
    message: str | None = None
    data: Any = None


def _message(body: Any, fallback: str) -> str:
    if isinstance(body, Mapping) and body.get("message"):
        return str(body["message"])
    return fallback


def _handle_response(response: httpx.Response) -> Result[Any, BackendError]:
    """Map one response to the envelope's data or a BackendError."""
    try:
        body: Any = response.json()
    except ValueError:
        body = None

    status = response.status_code
    if status in (401, 403):
        return Error(
            BackendError(
                kind=BackendErrorKind.UNAUTHORIZED,
                message=_message(body, "Please log in again."),
                status_code=status,
            )
        )
    if not response.is_success:
        return Error(
            BackendError(
                kind=BackendErrorKind.HTTP,
                message=_message(body, response.reason_phrase or f"HTTP {status}"),
                status_code=status,
            )
        )
    if body is None:
        return Error(
            BackendError(
                kind=BackendErrorKind.DECODE,
                message="Response was not JSON",
                status_code=status,
            )
        )

    try:
        envelope = Envelope.model_validate(body)
    except ValidationError as e:
        return Error(
            BackendError(
                kind=BackendErrorKind.DECODE,
                message="Unexpected response shape",
                status_code=status,
                cause=e,
            )
        )

    if not envelope.success:
        return Error(
            BackendError(
                kind=BackendErrorKind.REJECTED,
                message=envelope.message or "Request was rejected",
                status_code=status,
            )
        )
    return Ok(envelope.data)


def decode[M: BaseModel](model: type[M], data: Any) -> Result[M, BackendError]:
    """Validate envelope data into a wire model."""
    try:
        return Ok(model.model_validate(data))
    except ValidationError as e:
        return Error(
            BackendError(
                kind=BackendErrorKind.DECODE,
                message=f"Unexpected {model.__name__} payload",
                cause=e,
            )
        )


class BackendClient:
    """
    Bearer-token client for the storefront API.

    Example:
        async with BackendClient(config, token=session.token) as client:
            carts = HttpCartService(client)
            match await carts.get_user_cart(user_id): ...

    Note: pass `transport=httpx.MockTransport(handler)` in tests.
    """

    def __init__(
        self,
        config: StorefrontConfig | None = None,
        *,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or StorefrontConfig()
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self._config.api_base_url,
            timeout=self._config.request_timeout.total_seconds(),
            transport=transport,
        )

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    def authenticate(self, token: str | None) -> None:
        """Swap the bearer token (login / logout)."""
        self._token = token

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def call(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Result[Any, BackendError]:
        request_headers = dict(headers or {})
        if self._token:
            request_headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = await self._client.request(
                method, path, json=json, headers=request_headers
            )
        except httpx.RequestError as e:
            logger.error("Backend unavailable for %s %s: %s", method, path, e)
            return Error(
                BackendError(kind=BackendErrorKind.TRANSPORT, message=str(e) or type(e).__name__, cause=e)
            )

        result = _handle_response(response)
        match result:
            case Error(err):
                logger.warning("%s %s failed (%s): %s", method, path, err.kind.name, err.message)
            case Ok(_):
                logger.debug("%s %s -> %d", method, path, response.status_code)
        return result


__all__ = ("Envelope", "BackendClient", "decode")
