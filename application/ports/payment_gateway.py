"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Literal, Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    CallbackVerification,
    CustomerInfo,
    GatewayRefundRequest,
    GatewayRefundResult,
    PaymentRedirect,
)
from domain.order.entity import Order

# Reasons a callback is refused or answered without applying a transition.
RejectReason = Literal["invalid_signature", "order_not_found", "amount_mismatch", "already_confirmed", "unknown"]


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for redirect-style payment providers.

    Implementations are async for IO; ``verify_callback`` is pure and never raises.
    """

    provider: str

    async def create_payment_request(self, order: Order, customer: CustomerInfo) -> PaymentRedirect: ...

    def verify_callback(self, payload: Mapping[str, Any]) -> CallbackVerification: ...

    async def refund(self, req: GatewayRefundRequest) -> GatewayRefundResult: ...

    def acknowledge(self, verification: Optional[CallbackVerification] = None) -> dict[str, Any]: ...

    def reject(self, reason: RejectReason) -> dict[str, Any]: ...

    async def aclose(self) -> None: ...
