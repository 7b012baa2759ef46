"""
Order and discount-code tables.
Infrastructure detail only; business rules live in domain.order.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, JSON, String, Text

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, comment="Order id (uuid hex)")
    order_number = Column(String(32), unique=True, index=True, nullable=False, comment="Human-readable number")
    user_id = Column(String(64), index=True, nullable=False, comment="Owner")

    # Line items and shipping are stored as JSON documents
    items = Column(JSON, nullable=False, comment="Order items")
    shipping_info = Column(JSON, nullable=True, comment="Shipping address and fee")

    # Integer VND
    subtotal = Column(Integer, nullable=False, default=0)
    discount = Column(Integer, nullable=False, default=0)
    tax = Column(Integer, nullable=False, default=0)
    shipping_fee = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="VND")

    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    payment_method = Column(String(20), nullable=True, comment="vnpay | momo")
    payment_reference = Column(String(100), unique=True, nullable=True, comment="Gateway request reference")
    transaction_id = Column(String(100), nullable=True, index=True, comment="Gateway transaction id")
    discount_code = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    refund_id = Column(String(100), nullable=True)
    refund_pending = Column(Boolean, nullable=False, default=False, comment="Gateway refund in flight")

    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True, index=True)

    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return f"<OrderModel(id='{self.id}', order_number='{self.order_number}', status='{self.status}')>"


class DiscountCodeModel(Base):
    __tablename__ = "discount_codes"

    code = Column(String(50), primary_key=True, comment="Upper-cased code")
    type = Column(String(20), nullable=False, comment="percentage | fixed")
    value = Column(Integer, nullable=False)
    min_amount = Column(Integer, nullable=True)
    max_discount = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
