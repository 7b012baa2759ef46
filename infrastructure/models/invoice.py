"""
Invoice table; one invoice per order.
"""
from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from .base import Base


class InvoiceModel(Base):
    __tablename__ = "invoices"

    id = Column(String(64), primary_key=True)
    invoice_number = Column(String(20), unique=True, nullable=False)
    order_id = Column(String(64), unique=True, nullable=False, comment="At most one invoice per order")
    order_number = Column(String(32), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)

    # Snapshots taken at issue time
    company = Column(JSON, nullable=False)
    customer = Column(JSON, nullable=False)
    items = Column(JSON, nullable=False)

    subtotal = Column(Integer, nullable=False)
    item_discount_total = Column(Integer, nullable=False, default=0)
    discount = Column(Integer, nullable=False, default=0)
    shipping_fee = Column(Integer, nullable=False, default=0)
    tax = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="VND")

    status = Column(String(20), nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
