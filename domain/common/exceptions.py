"""Domain-level business exceptions, shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never imports core.
Every exception carries an internal ``message`` for logs and a ``message_key``
that resolves to the localized user-safe text.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from shared.codes import BusinessCode, ErrorKind


class BusinessException(Exception):
    """Base class for all business exceptions."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
        kind: ErrorKind = ErrorKind.UNKNOWN,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        self.kind = kind
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def with_context(self, **context) -> "BusinessException":
        """Attach operation context (e.g. order_id) without losing existing details."""
        merged = dict(self.details or {})
        for key, value in context.items():
            merged.setdefault(key, value)
        self.details = merged
        return self


class DomainValidationException(BusinessException):
    """Invariant violation inside an entity or value object."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[dict] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key=message_key or "validation.failed",
            format_params=format_params or {"reason": message},
            kind=ErrorKind.VALIDATION,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details={"order_id": order_id} if order_id else None,
            message_key="order.not_found",
            kind=ErrorKind.NOT_FOUND,
        )


class OrderStateConflictException(BusinessException):
    """Requested transition is not allowed from the order's current status."""

    def __init__(self, order_id: str, current_status: str, reason: str):
        super().__init__(
            code=BusinessCode.ORDER_STATE_CONFLICT,
            message=reason,
            error_type="OrderStateConflict",
            details={"order_id": order_id, "current_status": current_status},
            message_key="order.state_conflict",
            format_params={"status": current_status},
            kind=ErrorKind.CONFLICT,
        )


class PaymentMethodNotSupportedException(BusinessException):
    def __init__(self, method: Optional[str]):
        super().__init__(
            code=BusinessCode.PAYMENT_METHOD_UNSUPPORTED,
            message=f"Unsupported payment method: {method}",
            error_type="PaymentMethodNotSupported",
            details={"payment_method": method},
            field="payment_method",
            message_key="payment.method_unsupported",
            format_params={"method": method},
            kind=ErrorKind.VALIDATION,
        )


class RefundNotEligibleException(BusinessException):
    """Refund rejected before reaching the gateway; ``reason`` is the branchable cause."""

    def __init__(self, order_id: str, reason: str, kind: ErrorKind = ErrorKind.CONFLICT):
        super().__init__(
            code=BusinessCode.REFUND_NOT_ELIGIBLE,
            message=reason,
            error_type="RefundNotEligible",
            details={"order_id": order_id, "reason": reason},
            message_key="refund.not_eligible",
            format_params={"reason": reason},
            kind=kind,
        )


class InvoiceNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        super().__init__(
            code=BusinessCode.INVOICE_NOT_FOUND,
            message="Invoice not found",
            error_type="InvoiceNotFound",
            details={"order_id": order_id} if order_id else None,
            message_key="invoice.not_found",
            kind=ErrorKind.NOT_FOUND,
        )


class ForbiddenException(BusinessException):
    def __init__(self, message: str = "Forbidden", details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
            details=details,
            message_key="auth.forbidden",
            kind=ErrorKind.FORBIDDEN,
        )


class StorageException(BusinessException):
    """Raised by repositories when the backing store fails."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.DATABASE_ERROR,
            message=message,
            error_type="StorageError",
            details=details,
            message_key="error.storage",
            kind=ErrorKind.STORAGE,
        )


class DuplicateRecordException(StorageException):
    """A uniqueness constraint rejected the write; callers may retry with fresh values."""

    def __init__(self, field: str, details: Optional[dict] = None):
        super().__init__(f"Duplicate value for {field}", details=details)
        self.code = BusinessCode.DUPLICATE_RECORD
        self.error_type = "DuplicateRecord"
        self.field = field
        self.kind = ErrorKind.CONFLICT
        self.message_key = "error.conflict"


class UnknownException(BusinessException):
    """Wrapper for unexpected low-level failures that escaped typed handling."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.SYSTEM_ERROR,
            message=message,
            error_type="UnknownError",
            details=details,
            message_key="error.internal",
            kind=ErrorKind.UNKNOWN,
        )


def wrap_exception(exc: Exception, **context) -> BusinessException:
    """Return ``exc`` enriched with context, or an UnknownException wrapping it."""
    if isinstance(exc, BusinessException):
        return exc.with_context(**context)
    return UnknownException(f"{type(exc).__name__}: {exc}", details=dict(context))
