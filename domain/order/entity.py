"""
Order aggregate root and its status state machine.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException, OrderStateConflictException


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    CONFIRMED = "confirmed"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ItemType(str, Enum):
    COURSE = "course"
    PRODUCT = "product"
    SERVICE = "service"


# Every legal status change; anything else is rejected by Order.ensure_transition.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PROCESSING, OrderStatus.PAID, OrderStatus.COMPLETED,
        OrderStatus.FAILED, OrderStatus.CANCELLED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.PAID, OrderStatus.COMPLETED, OrderStatus.FAILED, OrderStatus.CANCELLED,
    }),
    OrderStatus.PAID: frozenset({OrderStatus.CONFIRMED, OrderStatus.COMPLETED, OrderStatus.REFUNDED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.DELIVERING}),
    OrderStatus.DELIVERING: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.FAILED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.FAILED})
PAYABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})
REFUNDABLE_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.COMPLETED})

# Lifecycle timestamps that may be written once and never moved afterwards.
ONCE_ONLY_TIMESTAMPS = ("paid_at", "completed_at", "cancelled_at", "refunded_at")


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize to an aware UTC datetime (naive values are taken as UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class OrderItem:
    type: ItemType
    item_id: str
    title: str
    price: int
    quantity: int = 1
    description: Optional[str] = None
    discount: int = 0
    partner_id: Optional[str] = None
    category: Optional[str] = None

    def __post_init__(self):
        self.type = ItemType(self.type)
        if self.quantity < 1:
            raise DomainValidationException("Item quantity must be at least 1", field="quantity")
        if self.price < 0:
            raise DomainValidationException("Item price must not be negative", field="price")
        if self.discount is None:
            self.discount = 0
        if self.discount < 0:
            raise DomainValidationException("Item discount must not be negative", field="discount")

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    @property
    def is_physical(self) -> bool:
        return self.type == ItemType.PRODUCT

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "item_id": self.item_id,
            "title": self.title,
            "price": self.price,
            "quantity": self.quantity,
            "description": self.description,
            "discount": self.discount,
            "partner_id": self.partner_id,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class ShippingInfo:
    recipient_name: str
    phone: str
    address: str
    city: str
    district: Optional[str] = None
    ward: Optional[str] = None
    shipping_fee: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient_name": self.recipient_name,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "district": self.district,
            "ward": self.ward,
            "shipping_fee": self.shipping_fee,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShippingInfo":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Order:
    """
    Order aggregate root.

    Rules:
    1. at least one item
    2. every money field is a non-negative integer (VND)
    3. total == subtotal - discount + tax + shipping_fee
    4. status changes follow ALLOWED_TRANSITIONS
    5. lifecycle timestamps are written once
    """

    id: str
    order_number: str
    user_id: str
    items: list[OrderItem]
    subtotal: int
    discount: int
    tax: int
    shipping_fee: int
    total: int
    currency: str = "VND"
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    transaction_id: Optional[str] = None
    shipping_info: Optional[ShippingInfo] = None
    discount_code: Optional[str] = None
    notes: Optional[str] = None
    refund_id: Optional[str] = None
    # Set while a gateway refund is in flight; blocks a second refund of the same order
    refund_pending: bool = False
    metadata: dict = field(default_factory=dict)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = OrderStatus(self.status)
        self.payment_status = PaymentStatus(self.payment_status)
        if self.metadata is None:
            self.metadata = {}
        self._validate_items()
        self._validate_money()
        self._normalize_timestamps()

    def _validate_items(self) -> None:
        if not self.items:
            raise DomainValidationException("Order must contain at least one item", field="items")

    def _validate_money(self) -> None:
        for name in ("subtotal", "discount", "tax", "shipping_fee", "total"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise DomainValidationException(f"{name} must be a non-negative integer: {value}", field=name)
        expected = self.subtotal - self.discount + self.tax + self.shipping_fee
        if self.total != expected:
            raise DomainValidationException(
                f"total {self.total} does not match subtotal - discount + tax + shipping_fee ({expected})",
                field="total",
            )

    def _normalize_timestamps(self) -> None:
        for name in ("created_at", "updated_at", *ONCE_ONLY_TIMESTAMPS):
            setattr(self, name, ensure_utc(getattr(self, name)))

    @property
    def is_digital_only(self) -> bool:
        return not any(item.is_physical for item in self.items)

    @property
    def is_paid(self) -> bool:
        return self.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)

    def can_transition_to(self, target: OrderStatus) -> bool:
        return target == self.status or target in ALLOWED_TRANSITIONS[self.status]

    def ensure_transition(self, target: OrderStatus) -> None:
        if not self.can_transition_to(target):
            raise OrderStateConflictException(
                self.id, self.status.value, f"Cannot move order from {self.status.value} to {target.value}"
            )

    def status_after_payment(self) -> OrderStatus:
        """Digital goods need no fulfilment, so they complete on payment."""
        return OrderStatus.COMPLETED if self.is_digital_only else OrderStatus.PAID

    def append_note(self, line: str) -> str:
        """Return notes with ``line`` appended; earlier notes are kept."""
        if self.notes:
            return f"{self.notes}\n{line}"
        return line

    def apply(self, changes: dict[str, Any]) -> "Order":
        """Return a copy with ``changes`` applied; once-only timestamps keep their first value."""
        effective = {
            key: value for key, value in changes.items()
            if not (key in ONCE_ONLY_TIMESTAMPS and getattr(self, key) is not None)
        }
        return replace(self, **effective)
