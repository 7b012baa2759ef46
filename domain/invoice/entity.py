"""
Invoice document: a read-only projection of an order plus customer and company details.

Rendering to HTML/PDF consumes this structure and lives outside this service.
"""
from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional

from domain.order.entity import Order, OrderStatus, PaymentStatus

VIETNAM_TZ = timezone(timedelta(hours=7))


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CompanyInfo:
    name: str
    address: str
    phone: str
    email: str
    website: str
    tax_code: str


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None


@dataclass
class InvoiceItem:
    description: str
    quantity: int
    unit_price: int
    discount: int
    amount: int
    tax_rate: int
    tax_amount: int


@dataclass
class Invoice:
    invoice_number: str
    order_id: str
    order_number: str
    user_id: str
    company: CompanyInfo
    customer: CustomerInfo
    items: List[InvoiceItem]
    subtotal: int
    item_discount_total: int
    discount: int
    shipping_fee: int
    tax: int
    total: int
    currency: str
    status: InvoiceStatus
    issued_at: datetime
    due_date: datetime
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        self.status = InvoiceStatus(self.status)


def generate_invoice_number(issued_at: datetime, sequence: Optional[int] = None) -> str:
    """``INV{yy}{mm}{seq}``; a random 4-digit sequence when none is supplied."""
    local = issued_at.astimezone(VIETNAM_TZ)
    seq = secrets.randbelow(10000) if sequence is None else sequence
    return f"INV{local:%y%m}{seq:04d}"


def _invoice_status(order: Order) -> InvoiceStatus:
    if order.status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
        return InvoiceStatus.CANCELLED
    if order.payment_status == PaymentStatus.COMPLETED:
        return InvoiceStatus.PAID
    return InvoiceStatus.ISSUED


def create_invoice_from_order(
    order: Order,
    customer: CustomerInfo,
    company: CompanyInfo,
    *,
    issued_at: Optional[datetime] = None,
    sequence: Optional[int] = None,
    tax_rate: int = 10,
    due_days: int = 30,
) -> Invoice:
    """
    Build an invoice from an order. Pure: never touches the order.

    Line amounts subtract the item-level discount; the order-level discount from a
    discount code is shown separately in ``discount``. Order totals are copied as-is.
    """
    issued = issued_at or datetime.now(timezone.utc)
    lines: List[InvoiceItem] = []
    for item in order.items:
        amount = item.price * item.quantity - (item.discount or 0)
        tax_amount = int((Decimal(amount) * Decimal(tax_rate) / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        ))
        description = f"{item.title} - {item.description}" if item.description else item.title
        lines.append(InvoiceItem(
            description=description,
            quantity=item.quantity,
            unit_price=item.price,
            discount=item.discount or 0,
            amount=amount,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
        ))

    return Invoice(
        invoice_number=generate_invoice_number(issued, sequence),
        order_id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        company=company,
        customer=customer,
        items=lines,
        subtotal=order.subtotal,
        item_discount_total=sum(line.discount for line in lines),
        discount=order.discount,
        shipping_fee=order.shipping_fee,
        tax=order.tax,
        total=order.total,
        currency=order.currency,
        status=_invoice_status(order),
        issued_at=issued,
        due_date=issued + timedelta(days=due_days),
        paid_at=order.paid_at,
        notes=order.notes,
    )
