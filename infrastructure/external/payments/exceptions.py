"""
Exceptions for payment providers mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes import ErrorKind
from shared.codes.payment_codes import PaymentCode


def _details(provider: str, provider_code: Optional[str], extra: Optional[dict]) -> dict:
    full = {"provider": provider, "provider_code": provider_code}
    if extra:
        full.update(extra)
    return full


class PaymentProviderError(BusinessException):
    """Gateway refused or answered with an error; user sees the conservative payment message."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=_details(provider, provider_code, details),
            message_key="payment.failed",
            kind=ErrorKind.PAYMENT,
        )


class PaymentNetworkError(BusinessException):
    """Gateway unreachable or timed out after retries."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.TIMEOUT,
            message=message,
            error_type="PaymentNetworkError",
            details=_details(provider, None, details),
            message_key="error.network",
            kind=ErrorKind.NETWORK,
        )
