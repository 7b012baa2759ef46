"""
Best-effort public IP discovery for gateways that require ``vnp_IpAddr``-style fields.
"""
from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from core.logging_config import get_logger

logger = get_logger(__name__)


class ClientIPResolver:
    """Prefers the caller-supplied IP, then an external lookup, then a loopback fallback.

    ``resolve`` never raises and never waits longer than ``timeout`` seconds in total.
    """

    def __init__(
        self,
        lookup_url: str = "https://api.ipify.org?format=json",
        timeout: float = 3.0,
        fallback: str = "127.0.0.1",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.lookup_url = lookup_url
        self.timeout = timeout
        self.fallback = fallback
        self._transport = transport

    async def _lookup(self) -> Optional[str]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.get(self.lookup_url)
            resp.raise_for_status()
            return resp.json().get("ip")

    async def resolve(self, preferred: Optional[str] = None) -> str:
        if preferred and preferred not in ("unknown", "testclient"):
            return preferred
        try:
            # httpx applies its timeout per phase; this bounds the whole lookup
            ip = await asyncio.wait_for(self._lookup(), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("client_ip_lookup_timeout", timeout=self.timeout)
            return self.fallback
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("client_ip_lookup_failed", error=str(exc))
            return self.fallback
        return ip if isinstance(ip, str) and ip else self.fallback
