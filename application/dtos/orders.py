"""
Order and invoice DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from application.dto import DTOBase
from domain.invoice.entity import Invoice
from domain.order.entity import Order, OrderItem, OrderStatus, ShippingInfo


class OrderItemDTO(DTOBase):
    type: Literal["course", "product", "service"]
    item_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    price: int = Field(..., ge=0, description="Unit price in VND")
    quantity: int = Field(1, ge=1)
    description: Optional[str] = None
    discount: int = Field(0, ge=0, description="Display-only per-item discount")
    partner_id: Optional[str] = None
    category: Optional[str] = None

    def to_entity(self) -> OrderItem:
        return OrderItem(**self.model_dump())

    @classmethod
    def from_entity(cls, item: OrderItem) -> "OrderItemDTO":
        return cls(**item.to_dict())


class ShippingInfoDTO(DTOBase):
    recipient_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=6, max_length=20)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    district: Optional[str] = None
    ward: Optional[str] = None

    def to_entity(self) -> ShippingInfo:
        return ShippingInfo(**self.model_dump())


class ShippingInfoResponseDTO(ShippingInfoDTO):
    shipping_fee: int = 0


class CreateOrderDTO(DTOBase):
    items: list[OrderItemDTO]
    shipping_info: Optional[ShippingInfoDTO] = None
    discount_code: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=1000)
    metadata: Optional[dict[str, Any]] = None


class CancelOrderDTO(DTOBase):
    reason: Optional[str] = Field(None, max_length=500)


class UpdateOrderStatusDTO(DTOBase):
    """Fulfilment-driven status change for physical orders."""
    status: Literal["confirmed", "delivering", "delivered", "completed"]
    note: Optional[str] = Field(None, max_length=500)


class OrderResponseDTO(DTOBase):
    id: str
    order_number: str
    user_id: str
    items: list[OrderItemDTO]
    subtotal: int
    discount: int
    tax: int
    shipping_fee: int
    total: int
    currency: str
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    transaction_id: Optional[str] = None
    shipping_info: Optional[ShippingInfoResponseDTO] = None
    discount_code: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, order: Order) -> "OrderResponseDTO":
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            items=[OrderItemDTO.from_entity(i) for i in order.items],
            subtotal=order.subtotal,
            discount=order.discount,
            tax=order.tax,
            shipping_fee=order.shipping_fee,
            total=order.total,
            currency=order.currency,
            status=order.status.value,
            payment_status=order.payment_status.value,
            payment_method=order.payment_method,
            payment_reference=order.payment_reference,
            transaction_id=order.transaction_id,
            shipping_info=ShippingInfoResponseDTO(**order.shipping_info.to_dict()) if order.shipping_info else None,
            discount_code=order.discount_code,
            notes=order.notes,
            created_at=order.created_at,
            updated_at=order.updated_at,
            paid_at=order.paid_at,
            completed_at=order.completed_at,
            cancelled_at=order.cancelled_at,
            refunded_at=order.refunded_at,
        )


class PaymentStatusDTO(DTOBase):
    order_id: str
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    total: int
    currency: str
    paid_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, order: Order) -> "PaymentStatusDTO":
        return cls(
            order_id=order.id,
            status=order.status.value,
            payment_status=order.payment_status.value,
            payment_method=order.payment_method,
            total=order.total,
            currency=order.currency,
            paid_at=order.paid_at,
            updated_at=order.updated_at,
        )


class InvoiceItemDTO(DTOBase):
    description: str
    quantity: int
    unit_price: int
    discount: int
    amount: int
    tax_rate: int
    tax_amount: int


class InvoiceDTO(DTOBase):
    id: str
    invoice_number: str
    order_id: str
    order_number: str
    company: dict[str, Any]
    customer: dict[str, Any]
    items: list[InvoiceItemDTO]
    subtotal: int
    item_discount_total: int
    discount: int
    shipping_fee: int
    tax: int
    total: int
    currency: str
    status: str
    issued_at: datetime
    due_date: datetime
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None

    @classmethod
    def from_entity(cls, invoice: Invoice) -> "InvoiceDTO":
        return cls(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            order_id=invoice.order_id,
            order_number=invoice.order_number,
            company=vars(invoice.company).copy(),
            customer=vars(invoice.customer).copy(),
            items=[InvoiceItemDTO(**vars(line)) for line in invoice.items],
            subtotal=invoice.subtotal,
            item_discount_total=invoice.item_discount_total,
            discount=invoice.discount,
            shipping_fee=invoice.shipping_fee,
            tax=invoice.tax,
            total=invoice.total,
            currency=invoice.currency,
            status=invoice.status.value,
            issued_at=invoice.issued_at,
            due_date=invoice.due_date,
            paid_at=invoice.paid_at,
            notes=invoice.notes,
        )


FULFILMENT_STATUSES = {
    "confirmed": OrderStatus.CONFIRMED,
    "delivering": OrderStatus.DELIVERING,
    "delivered": OrderStatus.DELIVERED,
    "completed": OrderStatus.COMPLETED,
}
