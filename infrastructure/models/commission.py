"""
Commission ledger table.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String

from .base import Base


class CommissionTransactionModel(Base):
    __tablename__ = "commission_transactions"

    id = Column(String(64), primary_key=True)
    order_id = Column(String(64), nullable=False, index=True)
    partner_id = Column(String(64), nullable=False, index=True)
    platform_id = Column(String(64), nullable=False)
    category = Column(String(50), nullable=False)

    gross_amount = Column(Integer, nullable=False)
    platform_rate = Column(Integer, nullable=False, comment="Platform share in percent")
    platform_commission = Column(Integer, nullable=False)
    partner_commission = Column(Integer, nullable=False)
    net_amount = Column(Integer, nullable=False)
    refund_amount = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default="pending", index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_commission_partner_status", "partner_id", "status"),
    )
