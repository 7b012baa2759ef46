from decimal import Decimal

import pytest

from domain.order.entity import OrderItem, ShippingInfo
from domain.order.pricing import (
    CityTableShippingPolicy,
    DiscountCode,
    calculate_shipping_fee,
    compute_discount,
    price_items,
    round_half_up,
)

HANOI_POLICY = CityTableShippingPolicy({"Hà Nội": 30000, "TP. Hồ Chí Minh": 30000, "Đà Nẵng": 40000}, 50000)


def _course(price=500000, quantity=1, discount=0):
    return OrderItem(type="course", item_id="c1", title="Khoá học", price=price, quantity=quantity, discount=discount)


def _product(price=200000, quantity=1):
    return OrderItem(type="product", item_id="p1", title="Sách", price=price, quantity=quantity)


def _ship(city="Hà Nội"):
    return ShippingInfo(recipient_name="A", phone="0901234567", address="1 Lê Lợi", city=city)


def test_round_half_up():
    assert round_half_up(Decimal("0.5")) == 1
    assert round_half_up(Decimal("1.5")) == 2
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("2.49")) == 2


def test_mixed_order_with_shipping_to_hanoi():
    items = [_course(price=500000), _product(price=200000, quantity=2)]
    pricing = price_items(items)
    fee = calculate_shipping_fee(items, _ship(), HANOI_POLICY)
    assert pricing.subtotal == 900000
    assert pricing.tax == 90000
    assert pricing.total == 990000
    assert fee == 30000
    assert pricing.total + fee == 1020000


def test_item_discount_is_display_only():
    pricing = price_items([_course(price=100000, discount=20000)])
    assert pricing.subtotal == 100000
    assert pricing.discount == 0
    assert pricing.total == 110000


def test_percentage_code_capped_by_max_discount():
    code = DiscountCode(code="sale50", type="percentage", value=50, max_discount=100000)
    assert code.code == "SALE50"
    assert compute_discount(1000000, code) == 100000
    assert compute_discount(150000, code) == 75000


def test_percentage_code_rounds_half_up():
    code = DiscountCode(code="P15", type="percentage", value=15)
    # 15% of 33333 = 4999.95
    assert compute_discount(33333, code) == 5000


def test_fixed_code_never_exceeds_subtotal():
    code = DiscountCode(code="FIX", type="fixed", value=80000)
    assert compute_discount(50000, code) == 50000
    assert compute_discount(200000, code) == 80000


@pytest.mark.parametrize(
    "code",
    [
        DiscountCode(code="MIN", type="fixed", value=10000, min_amount=500000),
        DiscountCode(code="OFF", type="fixed", value=10000, is_active=False),
        None,
    ],
)
def test_code_not_applied(code):
    assert compute_discount(100000, code) == 0


def test_tax_applies_after_discount():
    code = DiscountCode(code="TEN", type="percentage", value=10)
    pricing = price_items([_course(price=1000000)], code)
    assert pricing.discount == 100000
    assert pricing.tax == 90000
    assert pricing.total == 990000


def test_no_shipping_for_digital_orders_or_missing_address():
    assert calculate_shipping_fee([_course()], _ship(), HANOI_POLICY) == 0
    assert calculate_shipping_fee([_product()], None, HANOI_POLICY) == 0


def test_unknown_city_uses_default_fee():
    assert calculate_shipping_fee([_product()], _ship("Cần Thơ"), HANOI_POLICY) == 50000
    assert calculate_shipping_fee([_product()], _ship("Đà Nẵng"), HANOI_POLICY) == 40000
