"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Every key is read under the ``PAYMENT__`` prefix, e.g.
``PAYMENT__VNPAY__TMN_CODE`` or ``PAYMENT__MOMO__SECRET_KEY``.
Secrets are ``SecretStr`` so they never render in logs or reprs.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, SecretStr


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    # Optional IPs/CIDRs allowed to post server-to-server notifications, per gateway
    ip_allowlist: dict[str, list[str]] = Field(default_factory=dict)


class ClientIPSettings(BaseModel):
    lookup_url: str = "https://api.ipify.org?format=json"
    timeout: float = 3.0
    fallback: str = "127.0.0.1"


class RefundSettings(BaseModel):
    window_days: int = 30


class VNPaySettings(BaseModel):
    tmn_code: Optional[str] = None
    hash_secret: Optional[SecretStr] = None
    payment_url: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    api_url: str = "https://sandbox.vnpayment.vn/merchant_webapi/api/transaction"
    return_url: str = "http://localhost:3000/payment/vnpay/return"
    version: str = "2.1.0"
    command: str = "pay"
    currency: str = "VND"
    locale: str = "vn"
    order_type: str = "other"
    expire_minutes: int = 15


class MoMoSettings(BaseModel):
    partner_code: Optional[str] = None
    access_key: Optional[SecretStr] = None
    secret_key: Optional[SecretStr] = None
    endpoint: str = "https://test-payment.momo.vn/v2/gateway/api"
    redirect_url: str = "http://localhost:3000/payment/momo/return"
    ipn_url: str = "http://localhost:8000/api/v1/payments/momo/ipn"
    partner_name: str = "Nam Long Center"
    store_id: str = "NamLongCenter"
    request_type: str = "captureWallet"
    lang: str = "vi"
    auto_capture: bool = True


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    client_ip: ClientIPSettings = Field(default_factory=ClientIPSettings)
    refund: RefundSettings = Field(default_factory=RefundSettings)

    vnpay: VNPaySettings = Field(default_factory=VNPaySettings)
    momo: MoMoSettings = Field(default_factory=MoMoSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
