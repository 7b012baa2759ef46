"""
Order domain service - creation, pricing and every status mutation.

All writes go through ``update_order``/``_write``, which stamps ``updated_at``
and applies the change as a compare-and-swap on the current status.
"""
from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Optional

import structlog

from domain.common.exceptions import (
    DomainValidationException,
    OrderNotFoundException,
    OrderStateConflictException,
    StorageException,
)
from .entity import (
    CANCELLABLE_STATUSES,
    ONCE_ONLY_TIMESTAMPS,
    PAYABLE_STATUSES,
    REFUNDABLE_STATUSES,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    ShippingInfo,
)
from .events import (
    OrderCancelled,
    OrderCreated,
    OrderPaymentConfirmed,
    OrderPaymentFailed,
    OrderRefunded,
)
from .pricing import (
    DEFAULT_TAX_RATE,
    PricingResult,
    ShippingFeePolicy,
    calculate_shipping_fee,
    price_items,
)
from .repository import DiscountCodeRepository, OrderRepository

logger = structlog.get_logger(__name__)

VIETNAM_TZ = timezone(timedelta(hours=7))

PAYMENT_METHOD_LABELS = {"vnpay": "VNPay", "momo": "MoMo"}


def generate_order_number(prefix: str, now: Optional[datetime] = None) -> str:
    """``{prefix}{yy}{mm}{dd}{4 random digits}`` using the Vietnam calendar date."""
    local = (now or datetime.now(timezone.utc)).astimezone(VIETNAM_TZ)
    return f"{prefix}{local:%y%m%d}{secrets.randbelow(10000):04d}"


@dataclass
class TransitionResult:
    order: Order
    applied: bool


class OrderDomainService:
    """
    Order domain service.

    Responsibilities:
    1. derive pricing and shipping at creation
    2. enforce the status state machine on every write
    3. keep payment confirmation idempotent per gateway transaction id
    4. collect domain events
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        discount_code_repository: Optional[DiscountCodeRepository] = None,
        shipping_policy: Optional[ShippingFeePolicy] = None,
        *,
        tax_rate: Decimal = DEFAULT_TAX_RATE,
        order_number_prefix: str = "ORD",
        currency: str = "VND",
    ):
        self.order_repository = order_repository
        self.discount_code_repository = discount_code_repository
        self.shipping_policy = shipping_policy
        self.tax_rate = tax_rate
        self.order_number_prefix = order_number_prefix
        self.currency = currency
        self.events: List = []

    # ---- pricing ----

    async def calculate_pricing(
        self, items: Iterable[OrderItem], discount_code: Optional[str] = None
    ) -> PricingResult:
        """Price the items; a missing, inactive or unreadable code means no discount."""
        items = list(items)
        code = None
        if discount_code and self.discount_code_repository is not None:
            try:
                code = await self.discount_code_repository.get_by_code(discount_code.strip().upper())
            except StorageException as exc:
                logger.warning("discount_code_lookup_failed", code=discount_code, error=exc.message)
                code = None
        return price_items(items, code, self.tax_rate)

    def calculate_shipping_fee(self, items: Iterable[OrderItem], shipping_info: Optional[ShippingInfo]) -> int:
        if self.shipping_policy is None:
            return 0
        return calculate_shipping_fee(items, shipping_info, self.shipping_policy)

    # ---- creation & reads ----

    async def _unused_order_number(self, attempts: int = 5) -> str:
        for _ in range(attempts):
            candidate = generate_order_number(self.order_number_prefix)
            if not await self.order_repository.exists_order_number(candidate):
                return candidate
        # The unique constraint on insert stays the final arbiter.
        return generate_order_number(self.order_number_prefix)

    async def create_order(
        self,
        user_id: str,
        items: List[OrderItem],
        shipping_info: Optional[ShippingInfo] = None,
        discount_code: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Order:
        if not items:
            raise DomainValidationException("Order must contain at least one item", field="items")

        pricing = await self.calculate_pricing(items, discount_code)
        shipping_fee = self.calculate_shipping_fee(items, shipping_info)
        if shipping_info is not None:
            shipping_info.shipping_fee = shipping_fee

        now = datetime.now(timezone.utc)
        order = Order(
            id=uuid.uuid4().hex,
            order_number=await self._unused_order_number(),
            user_id=user_id,
            items=list(items),
            subtotal=pricing.subtotal,
            discount=pricing.discount,
            tax=pricing.tax,
            shipping_fee=shipping_fee,
            total=pricing.total + shipping_fee,
            currency=self.currency,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            shipping_info=shipping_info,
            discount_code=discount_code.strip().upper() if discount_code and pricing.discount else None,
            notes=notes,
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )
        created = await self.order_repository.create(order)
        self.events.append(OrderCreated(
            order_id=created.id, user_id=created.user_id,
            order_number=created.order_number, total=created.total,
        ))
        return created

    async def get_order(self, order_id: str) -> Order:
        order = await self.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    # ---- the single write path ----

    async def _write(
        self,
        order: Order,
        changes: dict[str, Any],
        expected_statuses: Optional[Iterable[OrderStatus]] = None,
        expected_refund_pending: Optional[bool] = None,
    ) -> Optional[Order]:
        target = changes.get("status")
        if target is not None:
            order.ensure_transition(OrderStatus(target))
        now = datetime.now(timezone.utc)
        effective = {
            key: value for key, value in changes.items()
            if not (key in ONCE_ONLY_TIMESTAMPS and getattr(order, key) is not None)
        }
        effective["updated_at"] = now
        # Validates money/item invariants before anything reaches the store.
        order.apply(effective)
        expected = set(expected_statuses) if expected_statuses is not None else {order.status}
        return await self.order_repository.update(
            order.id, effective, expected, expected_refund_pending=expected_refund_pending
        )

    async def update_order(
        self,
        order_id: str,
        changes: dict[str, Any],
        expected_statuses: Optional[Iterable[OrderStatus]] = None,
    ) -> Order:
        """Generic mutation used by fulfilment; fails with CONFLICT if the status moved underneath."""
        order = await self.get_order(order_id)
        updated = await self._write(order, changes, expected_statuses)
        if updated is None:
            current = await self.get_order(order_id)
            raise OrderStateConflictException(order_id, current.status.value, "Order was modified concurrently")
        return updated

    # ---- payment ----

    async def mark_processing(self, order: Order, payment_method: str, payment_reference: str) -> Order:
        """pending -> processing; raises CONFLICT if another request got there first."""
        updated = await self._write(
            order,
            {
                "status": OrderStatus.PROCESSING,
                "payment_status": PaymentStatus.PROCESSING,
                "payment_method": payment_method,
                "payment_reference": payment_reference,
            },
            expected_statuses={OrderStatus.PENDING},
        )
        if updated is None:
            current = await self.get_order(order.id)
            raise OrderStateConflictException(order.id, current.status.value, "Payment already initiated")
        return updated

    async def confirm_payment(
        self, order_id: str, transaction_id: str, payment_method: Optional[str] = None
    ) -> TransitionResult:
        """
        Record a successful payment.

        Idempotent: the same transaction id on an already-paid order is a no-op.
        A different transaction id on a paid or closed order is an anomaly (CONFLICT).
        """
        order = await self.get_order(order_id)
        for _ in range(2):
            if order.is_paid or order.status not in PAYABLE_STATUSES:
                if order.is_paid and order.transaction_id == transaction_id:
                    return TransitionResult(order=order, applied=False)
                logger.warning(
                    "payment_confirmation_anomaly",
                    order_id=order_id,
                    status=order.status.value,
                    stored_transaction_id=order.transaction_id,
                    transaction_id=transaction_id,
                )
                raise OrderStateConflictException(
                    order_id, order.status.value, "Order already settled with a different transaction"
                )

            now = datetime.now(timezone.utc)
            target = order.status_after_payment()
            changes: dict[str, Any] = {
                "status": target,
                "payment_status": PaymentStatus.COMPLETED,
                "transaction_id": transaction_id,
                "paid_at": now,
            }
            if payment_method:
                changes["payment_method"] = payment_method
            if target == OrderStatus.COMPLETED:
                changes["completed_at"] = now

            updated = await self._write(order, changes, expected_statuses={order.status})
            if updated is not None:
                self.events.append(OrderPaymentConfirmed(
                    order_id=order_id, user_id=updated.user_id, transaction_id=transaction_id,
                    payment_method=updated.payment_method, status=updated.status.value,
                ))
                return TransitionResult(order=updated, applied=True)
            # Lost the race; re-read and decide again.
            order = await self.get_order(order_id)

        raise OrderStateConflictException(order_id, order.status.value, "Order was modified concurrently")

    async def mark_payment_failed(self, order_id: str, message: str) -> TransitionResult:
        """pending/processing -> failed with the gateway message appended to notes; otherwise a no-op."""
        order = await self.get_order(order_id)
        if order.status not in PAYABLE_STATUSES or order.is_paid:
            logger.info("payment_failure_ignored", order_id=order_id, status=order.status.value)
            return TransitionResult(order=order, applied=False)

        label = PAYMENT_METHOD_LABELS.get(order.payment_method or "", order.payment_method or "Gateway")
        updated = await self._write(
            order,
            {
                "status": OrderStatus.FAILED,
                "payment_status": PaymentStatus.FAILED,
                "notes": order.append_note(f"{label} payment failed: {message}"),
            },
            expected_statuses=PAYABLE_STATUSES,
        )
        if updated is None:
            return TransitionResult(order=await self.get_order(order_id), applied=False)
        self.events.append(OrderPaymentFailed(order_id=order_id, user_id=updated.user_id, reason=message))
        return TransitionResult(order=updated, applied=True)

    # ---- cancellation & refund ----

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> Order:
        order = await self.get_order(order_id)
        if order.status not in CANCELLABLE_STATUSES:
            raise OrderStateConflictException(
                order_id, order.status.value, f"Order in status {order.status.value} cannot be cancelled"
            )
        changes: dict[str, Any] = {
            "status": OrderStatus.CANCELLED,
            "cancelled_at": datetime.now(timezone.utc),
        }
        if reason:
            changes["notes"] = order.append_note(f"Cancellation reason: {reason}")
        updated = await self._write(order, changes, expected_statuses=CANCELLABLE_STATUSES)
        if updated is None:
            current = await self.get_order(order_id)
            raise OrderStateConflictException(
                order_id, current.status.value, f"Order in status {current.status.value} cannot be cancelled"
            )
        self.events.append(OrderCancelled(order_id=order_id, user_id=updated.user_id, reason=reason))
        return updated

    async def claim_refund(self, order: Order) -> Optional[Order]:
        """Flag a refundable order as having a refund in flight; None when another request holds it."""
        return await self._write(
            order,
            {"refund_pending": True},
            expected_statuses=REFUNDABLE_STATUSES,
            expected_refund_pending=False,
        )

    async def release_refund(self, order: Order) -> Optional[Order]:
        return await self._write(order, {"refund_pending": False}, expected_refund_pending=True)

    async def mark_refunded(
        self, order: Order, refund_id: Optional[str], amount: int, reason: Optional[str] = None
    ) -> Order:
        line = f"Refunded {amount} {order.currency}"
        if reason:
            line = f"{line}: {reason}"
        updated = await self._write(
            order,
            {
                "status": OrderStatus.REFUNDED,
                "payment_status": PaymentStatus.REFUNDED,
                "refund_id": refund_id,
                "refunded_at": datetime.now(timezone.utc),
                "notes": order.append_note(line),
                "metadata": {**order.metadata, "refund_amount": amount},
                "refund_pending": False,
            },
            expected_statuses=REFUNDABLE_STATUSES,
            expected_refund_pending=True,
        )
        if updated is None:
            current = await self.get_order(order.id)
            raise OrderStateConflictException(order.id, current.status.value, "Order was modified concurrently")
        self.events.append(OrderRefunded(order_id=order.id, user_id=order.user_id, refund_id=refund_id, amount=amount))
        return updated
