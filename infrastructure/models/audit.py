"""
Append-only audit tables and user notifications.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, JSON, String, Text

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookLogModel(Base):
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    gateway = Column(String(20), nullable=False)
    order_id = Column(String(64), nullable=False, index=True)
    channel = Column(String(10), nullable=False, comment="ipn | return")
    outcome = Column(String(20), nullable=False)
    payload = Column(JSON, nullable=False)
    message = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_webhook_logs_order_gateway", "order_id", "gateway"),
    )


class ActivityLogModel(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=True)
    activity_type = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(10), nullable=False, default="normal")
    is_read = Column(Boolean, nullable=False, default=False)
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
