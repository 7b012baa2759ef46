"""
Order API routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_current_user, get_invoice_service, get_order_service
from application.dto import CurrentUser, PaginationParams
from application.dtos.orders import (
    CancelOrderDTO,
    CreateOrderDTO,
    InvoiceDTO,
    OrderResponseDTO,
    UpdateOrderStatusDTO,
)
from application.services.invoice_service import InvoiceService
from application.services.order_service import OrderService
from core.i18n import t
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.order.entity import OrderStatus

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "",
    summary="Create order",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[OrderResponseDTO],
)
async def create_order(
    payload: CreateOrderDTO,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """
    Create a pending order for the caller.

    Prices are in VND. Tax (10%) applies to the subtotal after the order
    discount code; shipping is added only for physical products.
    """
    order = await service.create_order(user, payload)
    return success_response(data=order, message=t("order.created"))


@router.get("", summary="List my orders", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def list_orders(
    page: int = Query(1, ge=1),
    size: Optional[int] = Query(None, ge=1),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    params = PaginationParams(page=page, size=size) if size else PaginationParams(page=page)
    orders, total = await service.list_orders(user, params, status_filter)
    return paginated_response(items=orders, total=total, page=params.page, size=params.size, message=t("order.list"))


@router.get("/{order_id}", summary="Get order", response_model=ApiResponse[OrderResponseDTO])
async def get_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get_order(user, order_id)
    return success_response(data=order, message=t("order.retrieved"))


@router.post("/{order_id}/cancel", summary="Cancel order", response_model=ApiResponse[OrderResponseDTO])
async def cancel_order(
    order_id: str,
    payload: Optional[CancelOrderDTO] = None,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Only pending orders can be cancelled."""
    order = await service.cancel_order(user, order_id, payload.reason if payload else None)
    return success_response(data=order, message=t("order.cancelled"))


@router.patch("/{order_id}/status", summary="Update fulfilment status", response_model=ApiResponse[OrderResponseDTO])
async def update_order_status(
    order_id: str,
    payload: UpdateOrderStatusDTO,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = await service.update_status(user, order_id, payload)
    return success_response(data=order, message=t("order.updated"))


@router.get("/{order_id}/invoice", summary="Get order invoice", response_model=ApiResponse[InvoiceDTO])
async def get_order_invoice(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.get_invoice(user, order_id)
    return success_response(data=invoice, message=t("invoice.retrieved"))
