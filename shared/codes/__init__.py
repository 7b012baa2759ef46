"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode and ErrorKind at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import Enum, IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # Generic resource not found
    ORDER_NOT_FOUND = 20100
    ORDER_STATE_CONFLICT = 20101
    ORDER_VALIDATION_ERROR = 20102
    PAYMENT_METHOD_UNSUPPORTED = 20103
    REFUND_NOT_ELIGIBLE = 20104
    INVOICE_NOT_FOUND = 20105
    DUPLICATE_RECORD = 20106

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002
    AUTH_ERROR = 30003

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003

    # Rate limiting (5xxxx)
    RATE_LIMIT_ERROR = 50000
    TOO_MANY_REQUESTS = 50001


class ErrorKind(str, Enum):
    """Machine-readable error category carried by every BusinessException."""

    AUTH = "AUTH_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    NETWORK = "NETWORK_ERROR"
    STORAGE = "DATABASE_ERROR"
    PAYMENT = "PAYMENT_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHORIZED = "UNAUTHORIZED"
    CONFLICT = "CONFLICT"
    UNKNOWN = "UNKNOWN_ERROR"


__all__ = ["BusinessCode", "ErrorKind"]
