"""
Refund orchestration: eligibility, gateway refund, order transition, commission reversal.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Mapping, Optional

from application.dto import CurrentUser
from application.dtos.payments import (
    GatewayRefundRequest,
    RefundHistoryItem,
    RefundRequest,
    RefundResult,
    RefundStats,
)
from application.ports.payment_gateway import PaymentGateway
from application.services.activity import format_vnd, record_order_events, refund_notification
from application.services.commission_service import CommissionService
from application.services.order_service import UnitOfWorkFactory
from core.i18n import t
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.audit.entity import ActivityLog
from domain.common.exceptions import (
    BusinessException,
    ForbiddenException,
    PaymentMethodNotSupportedException,
    RefundNotEligibleException,
)
from domain.order.entity import REFUNDABLE_STATUSES, Order, OrderStatus
from domain.order.service import OrderDomainService
from shared.codes import ErrorKind

logger = get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class RefundService:

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateways: Mapping[str, PaymentGateway],
        *,
        commission_service: Optional[CommissionService] = None,
        window_days: int = payment_settings.refund.window_days,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._uow_factory = uow_factory
        self._gateways = gateways
        self._commissions = commission_service or CommissionService(uow_factory)
        self._window_days = window_days
        self._clock = clock

    def check_eligibility(self, order: Optional[Order], req: RefundRequest, user: Optional[CurrentUser]) -> Order:
        """Raise when the order cannot be refunded for ``req``; return it otherwise."""
        if order is None:
            raise RefundNotEligibleException(req.order_id, "Order not found", kind=ErrorKind.NOT_FOUND)
        if req.requested_by == "customer" and not (user and user.is_admin):
            requester = req.user_id or (user.id if user else None)
            if requester != order.user_id:
                raise ForbiddenException("Order belongs to another user", details={"order_id": order.id})
        if order.status == OrderStatus.REFUNDED:
            raise RefundNotEligibleException(order.id, "Already refunded")
        if order.status == OrderStatus.CANCELLED:
            raise RefundNotEligibleException(order.id, "Order is cancelled")
        if order.status not in REFUNDABLE_STATUSES:
            raise RefundNotEligibleException(order.id, "Order not completed yet")
        if order.refund_pending:
            raise RefundNotEligibleException(order.id, "Refund already in progress")
        age = self._clock() - (order.created_at or self._clock())
        if age.days > self._window_days:
            raise RefundNotEligibleException(
                order.id, f"Refund window expired ({self._window_days} days)", kind=ErrorKind.VALIDATION
            )
        if req.amount > order.total:
            raise RefundNotEligibleException(
                order.id, f"Refund amount exceeds order total ({order.total})", kind=ErrorKind.VALIDATION
            )
        return order

    async def _log_attempt(self, req: RefundRequest, result: RefundResult, description: str) -> None:
        try:
            async with self._uow_factory() as uow:
                await uow.audit_log_repository.add_activity(self._activity(req, result, description))
        except BusinessException as exc:
            logger.error("refund_activity_log_failed", order_id=req.order_id, error=exc.message)

    @staticmethod
    def _activity(req: RefundRequest, result: RefundResult, description: str) -> ActivityLog:
        return ActivityLog(
            order_id=req.order_id,
            user_id=req.user_id,
            activity_type="refund",
            description=description,
            metadata={
                "refund_id": result.refund_id,
                "amount": req.amount,
                "reason": req.reason,
                "status": result.status,
                "requested_by": req.requested_by,
            },
        )

    async def process_refund(
        self,
        req: RefundRequest,
        user: Optional[CurrentUser] = None,
        client_ip: Optional[str] = None,
    ) -> RefundResult:
        """
        Refund ``req.amount`` of a paid order through its original gateway.

        The order is claimed (``refund_pending``) before the gateway is called,
        so concurrent requests for one order reach the gateway at most once.
        The claim is released when the gateway refuses or is unreachable.
        """
        logger.info("refund_request", order_id=req.order_id, amount=req.amount, requested_by=req.requested_by)
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(req.order_id)
        try:
            order = self.check_eligibility(order, req, user)
            gateway = self._gateways.get(order.payment_method or "")
            if gateway is None:
                raise PaymentMethodNotSupportedException(order.payment_method)
            order = await self._claim(order)
        except BusinessException as exc:
            rejected = RefundResult(success=False, status="failed", order_id=req.order_id, amount=req.amount,
                                    message=exc.message)
            await self._log_attempt(req, rejected, f"Refund rejected: {exc.message}")
            raise

        try:
            outcome = await gateway.refund(GatewayRefundRequest(
                order_id=order.id,
                amount=req.amount,
                total=order.total,
                reason=req.reason,
                transaction_id=order.transaction_id,
                payment_reference=order.payment_reference,
                paid_at=order.paid_at,
                requested_by=req.requested_by,
                client_ip=client_ip,
            ))
        except BusinessException as exc:
            logger.error("refund_gateway_error", order_id=order.id, provider=gateway.provider, error=exc.message)
            await self._release(order)
            failed = RefundResult(success=False, status="failed", order_id=order.id, amount=req.amount,
                                  message=t("refund.failed"))
            await self._log_attempt(req, failed, f"Refund failed: {exc.message}")
            return failed

        if not outcome.success:
            await self._release(order)
            failed = RefundResult(success=False, status="failed", order_id=order.id, amount=req.amount,
                                  message=outcome.message or t("refund.failed"))
            await self._log_attempt(req, failed, f"Refund failed: {outcome.message}")
            logger.warning("refund_rejected_by_gateway", order_id=order.id, result_code=outcome.result_code)
            return failed

        result = RefundResult(
            success=True,
            status=outcome.status,
            order_id=order.id,
            amount=req.amount,
            refund_id=outcome.refund_id,
            message=t("refund.processed"),
        )
        try:
            async with self._uow_factory() as uow:
                domain = OrderDomainService(uow.order_repository)
                refunded = await domain.mark_refunded(order, outcome.refund_id, req.amount, req.reason)
                await uow.notification_repository.add(
                    refund_notification(refunded, req.amount, outcome.refund_id, outcome.status)
                )
                await record_order_events(uow, domain.events)
                await uow.audit_log_repository.add_activity(
                    self._activity(req, result, f"Refund processed: {format_vnd(req.amount)} VNĐ")
                )
        except BusinessException as exc:
            # Money already moved: the claim stays set so the order cannot be refunded again
            logger.error(
                "refund_not_recorded",
                order_id=order.id,
                refund_id=outcome.refund_id,
                amount=req.amount,
                error=exc.message,
            )
            await self._log_attempt(req, result, f"Refund completed at gateway but not recorded: {exc.message}")
            return result

        try:
            await self._commissions.reverse_for_order(refunded, req.amount)
        except Exception as exc:
            logger.error("commission_reversal_failed", order_id=order.id, error_type=type(exc).__name__, error=str(exc))

        logger.info("refund_processed", order_id=order.id, refund_id=outcome.refund_id, amount=req.amount)
        return result

    async def _claim(self, order: Order) -> Order:
        async with self._uow_factory() as uow:
            claimed = await OrderDomainService(uow.order_repository).claim_refund(order)
        if claimed is None:
            raise RefundNotEligibleException(order.id, "Refund already in progress")
        return claimed

    async def _release(self, order: Order) -> None:
        try:
            async with self._uow_factory() as uow:
                released = await OrderDomainService(uow.order_repository).release_refund(order)
        except BusinessException as exc:
            logger.error("refund_claim_release_failed", order_id=order.id, error=exc.message)
            return
        if released is None:
            logger.error("refund_claim_release_failed", order_id=order.id, error="claim no longer held")

    async def get_refund_history(self, user_id: str) -> List[RefundHistoryItem]:
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_refunded(user_id=user_id)
        return [
            RefundHistoryItem(
                order_id=o.id,
                order_number=o.order_number,
                amount=int(o.metadata.get("refund_amount", o.total)),
                refund_id=o.refund_id,
                refunded_at=o.refunded_at,
                payment_method=o.payment_method,
            )
            for o in orders
        ]

    async def get_refund_stats(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> RefundStats:
        """Refund count and amount in the window; refund rate is refunds per paid order, in percent."""
        start = start or EPOCH
        end = end or self._clock() + timedelta(seconds=1)
        async with self._uow_factory(readonly=True) as uow:
            refunded = await uow.order_repository.list_refunded(start=start, end=end)
            paid = await uow.order_repository.count_paid_between(start, end)
        amounts = [int(o.metadata.get("refund_amount", o.total)) for o in refunded]
        total_amount = sum(amounts)
        count = len(amounts)
        return RefundStats(
            total_refunds=count,
            total_amount=total_amount,
            avg_refund_amount=round(total_amount / count) if count else 0,
            refund_rate=round(count / paid * 100, 2) if paid else 0.0,
        )
