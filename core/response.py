"""
Response envelope shared by every endpoint: {code, message, data, error}.
"""
from typing import Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone
from shared.codes import BusinessCode


T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Error block of a failed response."""
    type: str
    kind: Optional[str] = None
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    message_key: Optional[str] = None
    locale: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """UTC ISO8601 with a trailing Z."""
        ts = timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    """Response envelope."""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


class PaginatedData(BaseModel, Generic[T]):
    """One page of items."""
    items: list[T]
    total: int
    page: int
    size: int
    pages: int


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS
) -> Response:
    """Build a success envelope."""
    return Response(code=code, message=message, data=data, error=None)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
    kind: Optional[str] = None,
    locale: Optional[str] = None,
    message_key: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> Response:
    """
    Build an error envelope.

    Args:
        code: business code
        message: localized, user-facing message
        error_type: error class name
        details: structured context, never secrets or signatures
        field: offending field, if any
        request_id: request trace id
        kind: ErrorKind value
    """
    error = ErrorDetail(
        type=error_type,
        kind=kind,
        details=details,
        field=field,
        request_id=request_id,
        message_key=message_key,
        locale=locale,
    )
    if timestamp is not None:
        error.timestamp = timestamp
    return Response(code=code, message=message, data=None, error=error)


def paginated_response(
    items: list,
    total: int,
    page: int,
    size: int,
    message: str = "Success"
) -> Response[PaginatedData]:
    """Build a paginated success envelope."""
    pages = (total + size - 1) // size if size > 0 else 0
    return Response(
        code=BusinessCode.SUCCESS,
        message=message,
        data=PaginatedData(items=items, total=total, page=page, size=size, pages=pages),
        error=None,
    )
