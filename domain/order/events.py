"""
Order domain events.

Dataclass events record order lifecycle facts for downstream handling
(notifications, audit). The domain stays free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class OrderEvent:
    order_id: str
    user_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderCreated(OrderEvent):
    order_number: str = ""
    total: int = 0


@dataclass
class OrderPaymentConfirmed(OrderEvent):
    transaction_id: str = ""
    payment_method: Optional[str] = None
    status: str = ""


@dataclass
class OrderPaymentFailed(OrderEvent):
    reason: Optional[str] = None


@dataclass
class OrderCancelled(OrderEvent):
    reason: Optional[str] = None


@dataclass
class OrderRefunded(OrderEvent):
    refund_id: Optional[str] = None
    amount: int = 0
