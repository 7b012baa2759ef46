"""
Exception to HTTP status mapping and the global exception handlers.
"""
from typing import Optional
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import traceback
import uuid
from starlette import status as http_status

from .response import error_response
from shared.codes import BusinessCode, ErrorKind
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from core.i18n import t, get_locale


class UnauthorizedException(BusinessException):
    """No caller identity on the request."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="Unauthorized",
            message_key="auth.unauthorized",
            kind=ErrorKind.UNAUTHORIZED,
        )


KIND_TO_HTTP_STATUS = {
    ErrorKind.VALIDATION: http_status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTH: http_status.HTTP_401_UNAUTHORIZED,
    ErrorKind.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    ErrorKind.PAYMENT: http_status.HTTP_402_PAYMENT_REQUIRED,
    ErrorKind.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: http_status.HTTP_409_CONFLICT,
    ErrorKind.STORAGE: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.UNKNOWN: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.NETWORK: http_status.HTTP_503_SERVICE_UNAVAILABLE,
}


def user_message(exc: BusinessException) -> str:
    """Localized, user-safe text for an exception.

    Payment failures always get the conservative message so gateway internals never leak.
    """
    if exc.kind == ErrorKind.PAYMENT:
        return t("payment.failed")
    params = exc.format_params if isinstance(exc.format_params, dict) else {}
    return t(exc.message_key or "error.internal", **params)


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI):
    """
    Register the global exception handlers.

    Args:
        app: FastAPI application
    """
    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        """Business exceptions map to a status through their kind."""
        request_id = _request_id(request)
        status_code = KIND_TO_HTTP_STATUS.get(exc.kind, http_status.HTTP_400_BAD_REQUEST)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "business_exception",
            request_id=request_id,
            kind=exc.kind.value,
            code=int(exc.code),
            error=exc.message,
            details=exc.details,
        )
        response = error_response(
            code=exc.code,
            message=user_message(exc),
            error_type=exc.error_type,
            details=None if exc.kind in (ErrorKind.PAYMENT, ErrorKind.STORAGE, ErrorKind.UNKNOWN) else exc.details,
            field=exc.field,
            request_id=request_id,
            kind=exc.kind.value,
            locale=get_locale(),
            message_key=exc.message_key,
            timestamp=exc.timestamp,
        )
        headers = {"WWW-Authenticate": "Bearer"} if status_code == http_status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(status_code=status_code, content=response.model_dump(mode='json'), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Request validation errors."""
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        response = error_response(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=t("validation.failed", reason=first_error.get('msg', 'unknown')),
            error_type="ValidationError",
            details={"errors": [
                {"loc": list(e.get("loc", [])), "msg": e.get("msg"), "type": e.get("type")} for e in errors
            ]},
            field=field,
            request_id=_request_id(request),
            kind=ErrorKind.VALIDATION.value,
            locale=get_locale(),
            message_key="validation.failed",
        )
        return JSONResponse(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode='json')
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Starlette HTTP exceptions."""
        code_mapping = {
            401: BusinessCode.UNAUTHORIZED,
            403: BusinessCode.FORBIDDEN,
            404: BusinessCode.NOT_FOUND,
            429: BusinessCode.TOO_MANY_REQUESTS,
            500: BusinessCode.SYSTEM_ERROR,
            503: BusinessCode.SERVICE_UNAVAILABLE,
        }
        code = code_mapping.get(exc.status_code, BusinessCode.SYSTEM_ERROR)
        response = error_response(
            code=code,
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
            locale=get_locale(),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=response.model_dump(mode='json'),
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Anything else: 500 with a generic message."""
        request_id = _request_id(request)

        details: Optional[dict] = None
        if app.debug:
            details = {"exception": str(exc), "traceback": traceback.format_exc()}

        response = error_response(
            code=BusinessCode.SYSTEM_ERROR,
            message=t("error.internal"),
            error_type="SystemError",
            details=details,
            request_id=request_id,
            kind=ErrorKind.UNKNOWN.value,
            locale=get_locale(),
            message_key="error.internal",
        )
        logger.error("unhandled_exception", request_id=request_id, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode='json')
        )
