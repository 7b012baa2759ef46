"""
Payment DTOs (Pydantic v2) used at application boundaries.

Gateway-specific wire payloads live with their adapters; these are the
gateway-neutral shapes the application works with.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from application.dto import DTOBase

SUPPORTED_PAYMENT_METHODS = ("vnpay", "momo")


class CustomerInfo(BaseModel):
    """Payer details forwarded to the gateway."""
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None
    ip_address: Optional[str] = None
    locale: Optional[Literal["vn", "en"]] = None
    bank_code: Optional[str] = Field(None, max_length=20)


class CreatePayment(BaseModel):
    order_id: str
    payment_method: str = Field(..., description="vnpay | momo")
    customer_info: CustomerInfo


class PaymentRedirect(DTOBase):
    redirect_url: str
    gateway_reference: str
    provider: str
    qr_code_url: Optional[str] = None
    deeplink: Optional[str] = None


class CallbackVerification(BaseModel):
    """Gateway-neutral result of checking a callback's signature and result code."""
    is_valid: bool
    is_success: bool
    order_id: Optional[str] = None
    amount: Optional[int] = None
    gateway_transaction_id: Optional[str] = None
    gateway_reference: Optional[str] = None
    result_code: Optional[str] = None
    message: str = ""


class GatewayRefundRequest(BaseModel):
    order_id: str
    amount: int = Field(..., gt=0)
    total: int
    reason: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    requested_by: str = "system"
    client_ip: Optional[str] = None


class GatewayRefundResult(BaseModel):
    success: bool
    status: Literal["completed", "pending", "failed"]
    refund_id: Optional[str] = None
    message: str = ""
    result_code: Optional[str] = None


class RefundRequest(BaseModel):
    order_id: str
    amount: int = Field(..., gt=0, description="Amount in VND")
    reason: str = Field(..., min_length=1, max_length=500)
    user_id: Optional[str] = None
    requested_by: Literal["customer", "admin", "system"] = "customer"


class RefundResult(DTOBase):
    success: bool
    status: Literal["completed", "pending", "failed"]
    order_id: str
    amount: int
    refund_id: Optional[str] = None
    message: str = ""


class RefundHistoryItem(DTOBase):
    order_id: str
    order_number: str
    amount: int
    refund_id: Optional[str] = None
    refunded_at: Optional[datetime] = None
    payment_method: Optional[str] = None


class RefundStats(DTOBase):
    total_refunds: int
    total_amount: int
    avg_refund_amount: int
    refund_rate: float


class WebhookResult(BaseModel):
    """What the webhook handler decided, plus the body to send back to the gateway."""
    outcome: str
    success: bool
    order_id: Optional[str] = None
    message: str = ""
    response: dict[str, Any] = Field(default_factory=dict)
