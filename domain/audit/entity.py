"""
Append-only audit records and user notifications.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class WebhookOutcome(str, Enum):
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    AMOUNT_MISMATCH = "amount_mismatch"
    CONFLICT = "conflict"
    ERROR = "error"


class WebhookChannel(str, Enum):
    IPN = "ipn"
    RETURN = "return"


@dataclass
class WebhookLog:
    gateway: str
    order_id: str
    channel: WebhookChannel
    outcome: WebhookOutcome
    payload: dict
    message: Optional[str] = None
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None


@dataclass
class ActivityLog:
    order_id: str
    activity_type: str
    description: str
    user_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None


@dataclass
class Notification:
    user_id: str
    type: str
    title: str
    message: str
    metadata: dict = field(default_factory=dict)
    priority: str = "normal"
    is_read: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None
