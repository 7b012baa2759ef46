"""
Payments API routes.

Initiates gateway payments and receives gateway callbacks. IPN endpoints
answer with the gateway's own JSON body; everything else uses the standard
response envelope. Keep this thin: no gateway details here.
"""
from __future__ import annotations

import ipaddress
import json
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import (
    get_current_user,
    get_order_service,
    get_payment_service,
    get_webhook_service,
)
from api.middleware import get_client_ip
from application.dto import CurrentUser
from application.dtos.orders import PaymentStatusDTO
from application.dtos.payments import CreatePayment, PaymentRedirect
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.webhook_service import WebhookService
from core.i18n import t
from core.logging_config import get_logger
from core.response import Response as ApiResponse, success_response
from core.settings import payment_settings
from domain.audit.entity import WebhookChannel
from domain.common.exceptions import ForbiddenException

router = APIRouter(prefix="/payments", tags=["Payments"])
status_router = APIRouter(prefix="/payment", tags=["Payments"])
logger = get_logger(__name__)


def ip_allowed(provider: str, remote_ip: str | None) -> bool:
    """True when the gateway has no allowlist or ``remote_ip`` matches an IP or CIDR entry."""
    allowlist = payment_settings.webhook.ip_allowlist.get(provider) or []
    if not allowlist:
        return True
    if not remote_ip:
        return False
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", provider=provider, entry=entry)
    return False


def ensure_ip_allowed(provider: str, request: Request) -> None:
    remote_ip = request.client.host if request.client else None
    if not ip_allowed(provider, remote_ip):
        logger.warning("webhook_ip_not_allowed", provider=provider, remote_ip=remote_ip)
        raise ForbiddenException("Source IP not allowed", details={"provider": provider})


async def callback_payload(request: Request) -> dict[str, Any]:
    """Query parameters merged with a form or JSON body, whichever the gateway sent."""
    payload: dict[str, Any] = dict(request.query_params)
    if request.method != "POST":
        return payload
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        payload.update({k: v for k, v in form.items() if isinstance(v, str)})
        return payload
    raw = await request.body()
    if raw:
        try:
            body = json.loads(raw)
        except ValueError:
            logger.warning("webhook_body_unparsable", path=request.url.path, content_type=content_type)
            return payload
        if isinstance(body, dict):
            payload.update(body)
    return payload


@router.post("", summary="Create payment", response_model=ApiResponse[PaymentRedirect])
async def create_payment(
    payload: CreatePayment,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Returns the gateway URL the customer is redirected to."""
    if not payload.customer_info.ip_address:
        payload.customer_info.ip_address = get_client_ip()
    redirect = await service.create_payment(payload, user)
    return success_response(data=redirect, message=t("payment.created"))


async def _ipn(provider: str, request: Request, background: BackgroundTasks, service: WebhookService) -> JSONResponse:
    ensure_ip_allowed(provider, request)
    result = await service.handle(provider, await callback_payload(request), WebhookChannel.IPN, background)
    return JSONResponse(content=result.response)


async def _return(provider: str, request: Request, background: BackgroundTasks, service: WebhookService):
    result = await service.handle(provider, await callback_payload(request), WebhookChannel.RETURN, background)
    return success_response(
        data={
            "order_id": result.order_id,
            "success": result.success,
            "outcome": result.outcome,
            "message": result.message,
        },
        message=t("payment.return_processed"),
    )


@router.api_route("/vnpay/ipn", methods=["GET", "POST"], summary="VNPay IPN", include_in_schema=True)
async def vnpay_ipn(
    request: Request,
    background: BackgroundTasks,
    service: WebhookService = Depends(get_webhook_service),
):
    return await _ipn("vnpay", request, background, service)


@router.get("/vnpay/return", summary="VNPay browser return")
async def vnpay_return(
    request: Request,
    background: BackgroundTasks,
    service: WebhookService = Depends(get_webhook_service),
):
    return await _return("vnpay", request, background, service)


@router.post("/momo/ipn", summary="MoMo IPN")
async def momo_ipn(
    request: Request,
    background: BackgroundTasks,
    service: WebhookService = Depends(get_webhook_service),
):
    return await _ipn("momo", request, background, service)


@router.api_route("/momo/return", methods=["GET", "POST"], summary="MoMo browser return")
async def momo_return(
    request: Request,
    background: BackgroundTasks,
    service: WebhookService = Depends(get_webhook_service),
):
    return await _return("momo", request, background, service)


@status_router.get("/status/{order_id}", summary="Payment status", response_model=ApiResponse[PaymentStatusDTO])
async def payment_status(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    data = await service.get_payment_status(user, order_id)
    return success_response(data=data, message=t("payment.status"))
