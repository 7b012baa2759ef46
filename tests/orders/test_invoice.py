from datetime import datetime, timezone

import pytest

from application.dto import CurrentUser
from application.services.invoice_service import InvoiceService
from core.config import settings
from domain.common.exceptions import (
    DuplicateRecordException,
    ForbiddenException,
    InvoiceNotFoundException,
    OrderNotFoundException,
)
from domain.invoice import entity as invoice_entity
from domain.invoice.entity import (
    CompanyInfo,
    CustomerInfo,
    InvoiceStatus,
    create_invoice_from_order,
    generate_invoice_number,
)
from domain.order.entity import OrderItem, OrderStatus, PaymentStatus
from infrastructure.repositories.invoice_repository import SQLAlchemyInvoiceRepository
from tests.factories import make_order, store_order

COMPANY = CompanyInfo(
    name="Nam Long Education",
    address="Hà Nội",
    phone="1900 0000",
    email="billing@example.com",
    website="https://example.com",
    tax_code="0101234567",
)
CUSTOMER = CustomerInfo(name="Nguyễn Văn A", email="a@example.com")
ISSUED = datetime(2024, 1, 31, 20, 0, tzinfo=timezone.utc)
PAID = dict(status=OrderStatus.PAID, payment_status=PaymentStatus.COMPLETED, paid_at=ISSUED)


def test_invoice_number_uses_vietnam_month():
    # 20:00 UTC on Jan 31 is already February in Vietnam
    assert generate_invoice_number(ISSUED, 7) == "INV24020007"
    assert len(generate_invoice_number(ISSUED)) == len("INV24020007")


def test_lines_net_of_item_discount_with_tax():
    order = make_order(
        items=[
            OrderItem(type="course", item_id="c1", title="Python", price=300000, discount=50000,
                      description="Cơ bản"),
            OrderItem(type="product", item_id="b1", title="Sách", price=45005, quantity=2),
        ],
        discount=30000,
        shipping_fee=30000,
        notes="Giao giờ hành chính",
        **PAID,
    )

    invoice = create_invoice_from_order(order, CUSTOMER, COMPANY, issued_at=ISSUED, sequence=1)

    first, second = invoice.items
    assert first.description == "Python - Cơ bản"
    assert (first.amount, first.tax_amount) == (250000, 25000)
    # 10% of 90010 = 9001
    assert (second.amount, second.tax_amount) == (90010, 9001)
    assert invoice.item_discount_total == 50000
    assert (invoice.subtotal, invoice.discount, invoice.shipping_fee, invoice.tax, invoice.total) == (
        order.subtotal, 30000, 30000, order.tax, order.total
    )
    assert invoice.status == InvoiceStatus.PAID
    assert (invoice.due_date - invoice.issued_at).days == 30
    assert invoice.notes == "Giao giờ hành chính"


@pytest.mark.parametrize(
    "status,payment_status,expected",
    [
        (OrderStatus.PENDING, PaymentStatus.PENDING, InvoiceStatus.ISSUED),
        (OrderStatus.COMPLETED, PaymentStatus.COMPLETED, InvoiceStatus.PAID),
        (OrderStatus.CANCELLED, PaymentStatus.PENDING, InvoiceStatus.CANCELLED),
        (OrderStatus.REFUNDED, PaymentStatus.REFUNDED, InvoiceStatus.CANCELLED),
    ],
)
def test_status_follows_order(status, payment_status, expected):
    order = make_order(status=status, payment_status=payment_status)
    assert create_invoice_from_order(order, CUSTOMER, COMPANY).status == expected


def test_building_does_not_touch_order():
    order = make_order(**PAID)
    before = (order.status, order.total, order.notes, order.updated_at)
    create_invoice_from_order(order, CUSTOMER, COMPANY)
    assert (order.status, order.total, order.notes, order.updated_at) == before


@pytest.mark.asyncio
async def test_generate_is_idempotent(uow_factory, customer_profile):
    await store_order(uow_factory, make_order("o1", **PAID))
    service = InvoiceService(uow_factory, COMPANY)

    first = await service.generate_for_order("o1")
    second = await service.generate_for_order("o1")

    assert first.invoice_number == second.invoice_number
    assert first.customer.name == "Nguyễn Văn A"
    assert first.customer.address == "1 Lê Lợi, Quận 1"


@pytest.mark.asyncio
async def test_generate_skips_customer_without_profile(uow_factory):
    await store_order(uow_factory, make_order("o1", **PAID))
    assert await InvoiceService(uow_factory, COMPANY).generate_for_order("o1") is None


@pytest.mark.asyncio
async def test_generate_unknown_order(uow_factory):
    with pytest.raises(OrderNotFoundException):
        await InvoiceService(uow_factory, COMPANY).generate_for_order("ghost")


@pytest.mark.asyncio
async def test_get_invoice_issues_on_demand_for_paid_order(uow_factory, customer_profile):
    await store_order(uow_factory, make_order("o1", **PAID))

    dto = await InvoiceService(uow_factory, COMPANY).get_invoice(CurrentUser(id="u1"), "o1")

    assert dto.order_id == "o1"
    assert dto.status == "paid"
    assert dto.company["tax_code"] == "0101234567"


@pytest.mark.asyncio
async def test_get_invoice_for_unpaid_order_is_not_found(uow_factory, customer_profile):
    await store_order(uow_factory, make_order("o1"))
    with pytest.raises(InvoiceNotFoundException):
        await InvoiceService(uow_factory, COMPANY).get_invoice(CurrentUser(id="u1"), "o1")


@pytest.mark.asyncio
async def test_get_invoice_checks_ownership(uow_factory, customer_profile):
    await store_order(uow_factory, make_order("o1", **PAID))
    service = InvoiceService(uow_factory, COMPANY)
    with pytest.raises(ForbiddenException):
        await service.get_invoice(CurrentUser(id="u2"), "o1")
    assert (await service.get_invoice(CurrentUser(id="admin", is_admin=True), "o1")).order_id == "o1"


@pytest.mark.asyncio
async def test_invoice_number_collision_retries_with_fresh_number(uow_factory, customer_profile, monkeypatch):
    await store_order(uow_factory, make_order("o1", **PAID))
    await store_order(uow_factory, make_order("o2", **PAID))
    numbers = iter(["INV24010001", "INV24010001", "INV24010002"])
    monkeypatch.setattr(invoice_entity, "generate_invoice_number", lambda issued_at, sequence=None: next(numbers))
    service = InvoiceService(uow_factory, COMPANY)

    first = await service.generate_for_order("o1")
    second = await service.generate_for_order("o2")

    assert first.invoice_number == "INV24010001"
    assert second.invoice_number == "INV24010002"
    assert (await service.get_invoice(CurrentUser(id="u1"), "o2")).invoice_number == "INV24010002"


@pytest.mark.asyncio
async def test_invoice_number_collision_gives_up_after_max_attempts(uow_factory, customer_profile, monkeypatch):
    await store_order(uow_factory, make_order("o1", **PAID))
    await store_order(uow_factory, make_order("o2", **PAID))
    calls = []

    def same_number(issued_at, sequence=None):
        calls.append(issued_at)
        return "INV24010001"

    monkeypatch.setattr(invoice_entity, "generate_invoice_number", same_number)
    monkeypatch.setattr(settings.invoice, "number_max_attempts", 3)
    service = InvoiceService(uow_factory, COMPANY)
    await service.generate_for_order("o1")

    with pytest.raises(DuplicateRecordException) as exc:
        await service.generate_for_order("o2")
    assert exc.value.field == "invoice_number"
    assert len(calls) == 1 + 3


@pytest.mark.asyncio
async def test_duplicate_on_other_field_is_not_swallowed(uow_factory, customer_profile, monkeypatch):
    await store_order(uow_factory, make_order("o1", **PAID))

    async def duplicate_id(self, invoice):
        raise DuplicateRecordException("id")

    monkeypatch.setattr(SQLAlchemyInvoiceRepository, "add", duplicate_id)

    with pytest.raises(DuplicateRecordException) as exc:
        await InvoiceService(uow_factory, COMPANY).generate_for_order("o1")
    assert exc.value.field == "id"


@pytest.mark.asyncio
async def test_concurrent_issue_returns_the_stored_invoice(uow_factory, customer_profile, monkeypatch):
    await store_order(uow_factory, make_order("o1", **PAID))
    service = InvoiceService(uow_factory, COMPANY)
    stored = await service.generate_for_order("o1")
    real_get = SQLAlchemyInvoiceRepository.get_by_order
    hidden = []

    async def miss_once(self, order_id):
        # The first lookup runs before the other request has committed
        if not hidden:
            hidden.append(order_id)
            return None
        return await real_get(self, order_id)

    monkeypatch.setattr(SQLAlchemyInvoiceRepository, "get_by_order", miss_once)

    again = await service.generate_for_order("o1")
    assert again.invoice_number == stored.invoice_number
