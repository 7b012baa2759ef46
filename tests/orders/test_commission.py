import pytest

from application.services.commission_service import CommissionService, split_order
from domain.commission.entity import CommissionRate, CommissionStatus, calculate_commission
from domain.common.exceptions import DomainValidationException
from domain.order.entity import OrderItem
from tests.factories import make_order, store_order


def test_course_split_rounds_platform_share_half_up():
    split = calculate_commission(333333, "p1", "course")
    # 15% of 333333 = 49999.95
    assert split.platform_commission == 50000
    assert split.partner_commission == 283333
    assert split.platform_commission + split.partner_commission == 333333
    assert split.net_amount == split.partner_commission


def test_unknown_category_falls_back_to_first_rate():
    split = calculate_commission(100000, "p1", "webinar")
    assert split.category == "course"
    assert split.platform_rate == 15


def test_inactive_rate_is_skipped():
    rates = (
        CommissionRate("course", 15, 85),
        CommissionRate("document", 30, 70, is_active=False),
    )
    assert calculate_commission(100000, "p1", "document", rates).platform_commission == 15000


def test_rates_must_add_up():
    with pytest.raises(DomainValidationException):
        CommissionRate("course", 20, 85)


def test_negative_amount_rejected():
    with pytest.raises(DomainValidationException):
        calculate_commission(-1, "p1", "course")


def test_split_groups_partner_items_by_partner_and_category():
    order = make_order(items=[
        OrderItem(type="course", item_id="c1", title="A", price=200000, partner_id="p1", category="course"),
        OrderItem(type="course", item_id="c2", title="B", price=100000, quantity=2, partner_id="p1", category="course"),
        OrderItem(type="product", item_id="d1", title="Tài liệu", price=50000, partner_id="p2", category="document"),
        OrderItem(type="course", item_id="c3", title="In-house", price=900000),
    ])

    splits = split_order(order)

    assert [(s.partner_id, s.category, s.gross_amount) for s in splits] == [
        ("p1", "course", 400000),
        ("p2", "document", 50000),
    ]
    assert splits[1].platform_commission == 10000


@pytest.mark.asyncio
async def test_record_is_idempotent(uow_factory):
    items = [OrderItem(type="course", item_id="c1", title="A", price=500000, partner_id="p1", category="course")]
    order = await store_order(uow_factory, make_order("o1", items=items))
    service = CommissionService(uow_factory)

    first = await service.record_for_order(order)
    second = await service.record_for_order(order)

    assert [t.id for t in first] == [t.id for t in second]
    assert first[0].platform_commission == 75000
    assert first[0].partner_commission == 425000
    assert first[0].status == CommissionStatus.PENDING


@pytest.mark.asyncio
async def test_order_without_partner_items_records_nothing(uow_factory):
    order = await store_order(uow_factory, make_order("o1"))
    assert await CommissionService(uow_factory).record_for_order(order) == []


@pytest.mark.asyncio
async def test_reversal_shares_refund_by_gross_amount(uow_factory):
    items = [
        OrderItem(type="course", item_id="c1", title="A", price=300000, partner_id="p1", category="course"),
        OrderItem(type="course", item_id="c2", title="B", price=100000, partner_id="p2", category="course"),
    ]
    # total 440000 with VAT
    order = await store_order(uow_factory, make_order("o1", items=items))
    service = CommissionService(uow_factory)
    await service.record_for_order(order)

    reversed_ = await service.reverse_for_order(order, 440000)

    assert {(t.partner_id, t.refund_amount) for t in reversed_} == {("p1", 300000), ("p2", 100000)}
    assert all(t.status == CommissionStatus.REFUNDED and t.refunded_at for t in reversed_)
    assert await service.reverse_for_order(order, 440000) == []
