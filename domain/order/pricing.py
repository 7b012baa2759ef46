"""
Pricing: subtotal, discount-code, VAT and shipping fee derivation.

Money is integer VND throughout; every rounding step is half-up.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Mapping, Optional, Protocol, runtime_checkable

from domain.order.entity import OrderItem, ShippingInfo

DEFAULT_TAX_RATE = Decimal("0.10")


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass
class DiscountCode:
    code: str
    type: DiscountType
    value: int
    min_amount: Optional[int] = None
    max_discount: Optional[int] = None
    is_active: bool = True
    description: Optional[str] = None

    def __post_init__(self):
        self.code = self.code.upper()
        self.type = DiscountType(self.type)

    def applies_to(self, subtotal: int) -> bool:
        if not self.is_active:
            return False
        # A minimum of 0 means no minimum.
        return not self.min_amount or subtotal >= self.min_amount


@dataclass(frozen=True)
class PricingResult:
    subtotal: int
    discount: int
    tax: int
    total: int


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_subtotal(items: Iterable[OrderItem]) -> int:
    """Sum of price * quantity; item-level discounts are display-only and ignored here."""
    return sum(item.price * item.quantity for item in items)


def compute_discount(subtotal: int, code: Optional[DiscountCode]) -> int:
    if code is None or not code.applies_to(subtotal):
        return 0
    if code.type == DiscountType.PERCENTAGE:
        amount = round_half_up(Decimal(subtotal) * Decimal(code.value) / Decimal(100))
        if code.max_discount is not None:
            amount = min(amount, code.max_discount)
    else:
        amount = code.value
    return max(0, min(amount, subtotal))


def compute_tax(taxable: int, tax_rate: Decimal = DEFAULT_TAX_RATE) -> int:
    return round_half_up(Decimal(taxable) * tax_rate)


def price_items(
    items: Iterable[OrderItem],
    code: Optional[DiscountCode] = None,
    tax_rate: Decimal = DEFAULT_TAX_RATE,
) -> PricingResult:
    """Pure pricing over an already-resolved discount code."""
    subtotal = calculate_subtotal(items)
    discount = compute_discount(subtotal, code)
    tax = compute_tax(subtotal - discount, tax_rate)
    return PricingResult(subtotal=subtotal, discount=discount, tax=tax, total=subtotal - discount + tax)


@runtime_checkable
class ShippingFeePolicy(Protocol):
    """Decides the fee for a physical shipment."""

    def fee_for(self, shipping_info: ShippingInfo) -> int:
        ...


class CityTableShippingPolicy:
    """Flat fee per destination city with a default for everything else."""

    def __init__(self, city_fees: Mapping[str, int], default_fee: int):
        self._city_fees = dict(city_fees)
        self._default_fee = default_fee

    def fee_for(self, shipping_info: ShippingInfo) -> int:
        return self._city_fees.get(shipping_info.city, self._default_fee)


def calculate_shipping_fee(
    items: Iterable[OrderItem],
    shipping_info: Optional[ShippingInfo],
    policy: ShippingFeePolicy,
) -> int:
    """Zero for orders without a product item or without a destination."""
    if shipping_info is None:
        return 0
    if not any(item.is_physical for item in items):
        return 0
    return policy.fee_for(shipping_info)
