"""
Base payment client implementing shared concerns: http, retry, signing, logging.

Concrete providers subclass and implement gateway-specific logic.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Awaitable, Callable, Mapping, Optional
from contextlib import asynccontextmanager
from urllib.parse import quote_plus

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import CallbackVerification
from infrastructure.external.payments.exceptions import PaymentNetworkError, PaymentProviderError


logger = get_logger(__name__)


def canonical_query(params: Mapping[str, Any], *, url_encode: bool) -> str:
    """Sort keys, join ``key=value`` with ``&``; None values are skipped."""
    parts = []
    for key in sorted(params):
        value = params[key]
        if value is None:
            continue
        text = str(value)
        parts.append(f"{key}={quote_plus(text) if url_encode else text}")
    return "&".join(parts)


def hmac_hex(secret: str, message: str, digestmod=hashlib.sha256) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), digestmod).hexdigest()


def signatures_match(expected: str, received: Optional[str]) -> bool:
    """Constant-time, case-insensitive comparison of hex signatures."""
    if not received:
        return False
    return hmac.compare_digest(expected.lower(), received.lower())


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 2.0, "read": 10.0, "write": 10.0, "total": 15.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        # Kept open for reuse; aclose() releases it.
        yield self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        """Retry transient transport failures, then surface them as NETWORK errors."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
                wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
                retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
                reraise=True,
            ):
                with attempt:
                    return await fn()
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logger.error("payment_gateway_unreachable", provider=self.provider, error=str(exc))
            raise PaymentNetworkError(
                f"{self.provider} gateway unreachable: {type(exc).__name__}", provider=self.provider
            ) from exc

    async def _post_json(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        async def _do() -> httpx.Response:
            async with self.client() as c:
                return await c.post(url, json=body)

        resp = await self._retry(_do)
        if resp.status_code >= 500:
            raise PaymentProviderError(
                f"{self.provider} returned HTTP {resp.status_code}",
                provider=self.provider,
                provider_code=str(resp.status_code),
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise PaymentProviderError(
                f"{self.provider} returned a non-JSON body", provider=self.provider
            ) from exc
        if not isinstance(data, dict):
            raise PaymentProviderError(f"{self.provider} returned an unexpected body", provider=self.provider)
        return data

    @staticmethod
    def _invalid(message: str = "invalid signature", **fields: Any) -> CallbackVerification:
        return CallbackVerification(is_valid=False, is_success=False, message=message, **fields)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.provider, **kwargs)
