"""
Refund API routes.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.dependencies import get_current_admin, get_current_user, get_refund_service
from api.middleware import get_client_ip
from application.dto import CurrentUser
from application.dtos.payments import RefundHistoryItem, RefundRequest, RefundResult, RefundStats
from application.services.refund_service import RefundService
from core.i18n import t
from core.response import Response as ApiResponse, success_response

router = APIRouter(prefix="/refunds", tags=["Refunds"])


class RefundCreateDTO(BaseModel):
    order_id: str
    amount: int = Field(..., gt=0, description="Amount in VND")
    reason: str = Field(..., min_length=1, max_length=500)


@router.post("", summary="Request refund", response_model=ApiResponse[RefundResult])
async def create_refund(
    payload: RefundCreateDTO,
    user: CurrentUser = Depends(get_current_user),
    service: RefundService = Depends(get_refund_service),
):
    """
    Refund a paid order through its original gateway.

    A gateway rejection is not an error: the response carries
    ``success=false`` and the order is left untouched.
    """
    req = RefundRequest(
        order_id=payload.order_id,
        amount=payload.amount,
        reason=payload.reason,
        user_id=user.id,
        requested_by="admin" if user.is_admin else "customer",
    )
    result = await service.process_refund(req, user, get_client_ip())
    return success_response(data=result, message=result.message)


@router.get("/history", summary="My refund history", response_model=ApiResponse[List[RefundHistoryItem]])
async def refund_history(
    user: CurrentUser = Depends(get_current_user),
    service: RefundService = Depends(get_refund_service),
):
    items = await service.get_refund_history(user.id)
    return success_response(data=items, message=t("refund.history"))


@router.get("/stats", summary="Refund statistics", response_model=ApiResponse[RefundStats])
async def refund_stats(
    start: Optional[datetime] = Query(None, description="Inclusive lower bound on refunded_at"),
    end: Optional[datetime] = Query(None, description="Exclusive upper bound on refunded_at"),
    _admin: CurrentUser = Depends(get_current_admin),
    service: RefundService = Depends(get_refund_service),
):
    stats = await service.get_refund_stats(start, end)
    return success_response(data=stats, message=t("refund.stats"))
