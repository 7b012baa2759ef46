"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.ports.payment_gateway import PaymentGateway
from core.settings import PaymentSettings, payment_settings
from infrastructure.external.payments.client_ip import ClientIPResolver
from infrastructure.external.payments.momo_client import MoMoClient
from infrastructure.external.payments.vnpay_client import VNPayClient


def build_payment_gateways(
    settings: PaymentSettings = payment_settings,
    *,
    ip_resolver: Optional[ClientIPResolver] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, PaymentGateway]:
    """One client per supported method, keyed by the method name used in requests."""
    timeouts = settings.timeouts.model_dump()
    retry = {"max": settings.retry.max, "base": settings.retry.base_backoff}
    resolver = ip_resolver or ClientIPResolver(
        lookup_url=settings.client_ip.lookup_url,
        timeout=settings.client_ip.timeout,
        fallback=settings.client_ip.fallback,
    )
    return {
        "vnpay": VNPayClient(
            settings.vnpay, ip_resolver=resolver, timeouts=timeouts, retry=retry, transport=transport
        ),
        "momo": MoMoClient(settings.momo, timeouts=timeouts, retry=retry, transport=transport),
    }


__all__ = ["build_payment_gateways", "ClientIPResolver", "MoMoClient", "VNPayClient"]
