"""
Commission split between the platform and content partners.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Sequence
import uuid

from domain.common.exceptions import DomainValidationException

PLATFORM_ID = "namlong_platform"


class CommissionStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class CommissionRate:
    category: str
    platform_rate: int
    partner_rate: int
    min_amount: int = 0
    max_amount: Optional[int] = None
    is_active: bool = True

    def __post_init__(self):
        if self.platform_rate + self.partner_rate != 100:
            raise DomainValidationException(
                f"Commission rates for {self.category} must add up to 100", field="platform_rate"
            )


DEFAULT_COMMISSION_RATES: tuple[CommissionRate, ...] = (
    CommissionRate("course", 15, 85, min_amount=0),
    CommissionRate("document", 20, 80, min_amount=0),
    CommissionRate("subscription", 10, 90, min_amount=0),
    CommissionRate("membership", 25, 75, min_amount=0),
)


@dataclass(frozen=True)
class CommissionSplit:
    gross_amount: int
    platform_rate: int
    platform_commission: int
    partner_commission: int
    net_amount: int
    category: str
    partner_id: str


def resolve_rate(category: Optional[str], rates: Sequence[CommissionRate] = DEFAULT_COMMISSION_RATES) -> CommissionRate:
    """Active rate for the category, else the first configured rate."""
    for rate in rates:
        if rate.category == category and rate.is_active:
            return rate
    return rates[0]


def calculate_commission(
    amount: int,
    partner_id: str,
    category: Optional[str],
    rates: Sequence[CommissionRate] = DEFAULT_COMMISSION_RATES,
) -> CommissionSplit:
    """
    Split ``amount`` by the category rate.

    The platform share is rounded half-up; the partner receives the remainder so
    both shares always add back to ``amount`` exactly.
    """
    if amount < 0:
        raise DomainValidationException("Commission amount must not be negative", field="amount")
    rate = resolve_rate(category, rates)
    platform = int((Decimal(amount) * Decimal(rate.platform_rate) / Decimal(100)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    ))
    partner = amount - platform
    return CommissionSplit(
        gross_amount=amount,
        platform_rate=rate.platform_rate,
        platform_commission=platform,
        partner_commission=partner,
        net_amount=partner,
        category=rate.category,
        partner_id=partner_id,
    )


@dataclass
class CommissionTransaction:
    order_id: str
    partner_id: str
    category: str
    gross_amount: int
    platform_rate: int
    platform_commission: int
    partner_commission: int
    net_amount: int
    status: CommissionStatus = CommissionStatus.PENDING
    platform_id: str = PLATFORM_ID
    refund_amount: Optional[int] = None
    id: str = field(default_factory=lambda: f"comm_{uuid.uuid4().hex}")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    refunded_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = CommissionStatus(self.status)
        if self.platform_commission + self.partner_commission != self.gross_amount:
            raise DomainValidationException("Commission shares do not reconcile to gross amount", field="gross_amount")

    @classmethod
    def from_split(cls, order_id: str, split: CommissionSplit) -> "CommissionTransaction":
        return cls(
            order_id=order_id,
            partner_id=split.partner_id,
            category=split.category,
            gross_amount=split.gross_amount,
            platform_rate=split.platform_rate,
            platform_commission=split.platform_commission,
            partner_commission=split.partner_commission,
            net_amount=split.net_amount,
        )
