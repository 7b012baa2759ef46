"""
Activity-log and notification helpers shared by the order, webhook and refund services.
"""
from __future__ import annotations

from typing import Iterable, Optional

from domain.audit.entity import ActivityLog, Notification
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.order.events import (
    OrderCancelled,
    OrderCreated,
    OrderEvent,
    OrderPaymentConfirmed,
    OrderPaymentFailed,
    OrderRefunded,
)


def format_vnd(amount: int) -> str:
    """1020000 -> '1.020.000'"""
    return f"{amount:,}".replace(",", ".")


def _describe(event: OrderEvent) -> tuple[str, str, dict]:
    if isinstance(event, OrderCreated):
        return "order_created", f"Order {event.order_number} created", {"total": event.total}
    if isinstance(event, OrderPaymentConfirmed):
        return (
            "payment_confirmed",
            f"Payment confirmed via {event.payment_method}",
            {"transaction_id": event.transaction_id, "status": event.status},
        )
    if isinstance(event, OrderPaymentFailed):
        return "payment_failed", f"Payment failed: {event.reason}", {}
    if isinstance(event, OrderCancelled):
        return "order_cancelled", f"Order cancelled: {event.reason or '-'}", {}
    if isinstance(event, OrderRefunded):
        return (
            "order_refunded",
            f"Order refunded: {format_vnd(event.amount)} VND",
            {"refund_id": event.refund_id, "amount": event.amount},
        )
    return type(event).__name__, "", {}


async def record_order_events(uow: AbstractUnitOfWork, events: Iterable[OrderEvent]) -> None:
    """Append one activity entry per domain event, inside the caller's transaction."""
    for event in events:
        activity_type, description, metadata = _describe(event)
        await uow.audit_log_repository.add_activity(ActivityLog(
            order_id=event.order_id,
            user_id=event.user_id,
            activity_type=activity_type,
            description=description,
            metadata={"event_id": event.event_id, **metadata},
            created_at=event.occurred_at,
        ))


def payment_success_notification(order: Order) -> Notification:
    return Notification(
        user_id=order.user_id,
        type="payment_success",
        title="Thanh toán thành công",
        message=f"Đơn hàng {order.order_number} đã được thanh toán thành công "
                f"({format_vnd(order.total)} VNĐ).",
        metadata={"order_id": order.id, "transaction_id": order.transaction_id},
        priority="high",
    )


def payment_failed_notification(order: Order, reason: Optional[str]) -> Notification:
    return Notification(
        user_id=order.user_id,
        type="payment_failed",
        title="Thanh toán thất bại",
        message=f"Thanh toán đơn hàng {order.order_number} không thành công. {reason or ''}".strip(),
        metadata={"order_id": order.id},
        priority="high",
    )


def refund_notification(order: Order, amount: int, refund_id: Optional[str], status: str) -> Notification:
    return Notification(
        user_id=order.user_id,
        type="refund_processed",
        title="Hoàn tiền thành công",
        message=f"Đơn hàng của bạn đã được hoàn tiền {format_vnd(amount)} VNĐ",
        metadata={"order_id": order.id, "refund_id": refund_id, "amount": amount, "status": status},
        priority="high",
    )
