from datetime import datetime, timedelta, timezone

import pytest

from application.dto import CurrentUser
from application.dtos.payments import GatewayRefundResult, RefundRequest
from application.services.commission_service import CommissionService
from application.services.refund_service import RefundService
from domain.commission.entity import CommissionStatus
from domain.common.exceptions import (
    ForbiddenException,
    OrderStateConflictException,
    PaymentMethodNotSupportedException,
    RefundNotEligibleException,
)
from domain.order.entity import OrderItem, OrderStatus, PaymentStatus
from domain.order.service import OrderDomainService
from infrastructure.external.payments.exceptions import PaymentNetworkError
from shared.codes import ErrorKind
from tests.factories import FakeGateway, make_order, store_order

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
CUSTOMER = CurrentUser(id="u1")
ADMIN = CurrentUser(id="admin", is_admin=True)
PARTNER_COURSE = [OrderItem(type="course", item_id="c1", title="Python", price=500000,
                            partner_id="p1", category="course")]
COMPLETED = GatewayRefundResult(success=True, status="completed", refund_id="R1", message="ok", result_code="00")


def _paid_order(order_id="o1", *, age_days=1, **overrides):
    fields = dict(
        status=OrderStatus.COMPLETED,
        payment_status=PaymentStatus.COMPLETED,
        payment_method="vnpay",
        payment_reference=f"{order_id}_1",
        transaction_id="TXN1",
        created_at=NOW - timedelta(days=age_days),
        paid_at=NOW - timedelta(days=age_days),
    )
    fields.update(overrides)
    return make_order(order_id, **fields)


def _service(uow_factory, gateway):
    return RefundService(uow_factory, {"vnpay": gateway}, clock=lambda: NOW)


def _request(order_id="o1", amount=550000, requested_by="customer", user_id="u1"):
    return RefundRequest(order_id=order_id, amount=amount, reason="Khoá học không phù hợp",
                         user_id=user_id, requested_by=requested_by)


async def _activities(uow_factory, order_id="o1"):
    async with uow_factory(readonly=True) as uow:
        return await uow.audit_log_repository.list_activities(order_id, "refund")


@pytest.mark.asyncio
async def test_successful_refund(uow_factory):
    await store_order(uow_factory, _paid_order())
    gateway = FakeGateway(refund_result=COMPLETED)

    result = await _service(uow_factory, gateway).process_refund(_request(), CUSTOMER, "10.0.0.1")

    assert result.success
    assert result.status == "completed"
    assert result.refund_id == "R1"
    sent = gateway.refunds[0]
    assert (sent.amount, sent.total, sent.transaction_id, sent.client_ip) == (550000, 550000, "TXN1", "10.0.0.1")

    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id("o1")
        notifications = await uow.notification_repository.list_by_user("u1", "refund_processed")
    assert order.status == OrderStatus.REFUNDED
    assert order.payment_status == PaymentStatus.REFUNDED
    assert order.refund_id == "R1"
    assert order.refunded_at is not None
    assert order.metadata["refund_amount"] == 550000
    assert notifications[0].title == "Hoàn tiền thành công"
    assert len(await _activities(uow_factory)) == 1


@pytest.mark.asyncio
async def test_gateway_refusal_leaves_order_untouched(uow_factory):
    await store_order(uow_factory, _paid_order())
    refused = GatewayRefundResult(success=False, status="failed", message="Giao dịch không tồn tại", result_code="91")

    result = await _service(uow_factory, FakeGateway(refund_result=refused)).process_refund(_request(), CUSTOMER)

    assert not result.success
    assert result.status == "failed"
    assert result.message == "Giao dịch không tồn tại"
    async with uow_factory(readonly=True) as uow:
        assert (await uow.order_repository.get_by_id("o1")).status == OrderStatus.COMPLETED
    activities = await _activities(uow_factory)
    assert len(activities) == 1
    assert activities[0].metadata["status"] == "failed"


@pytest.mark.asyncio
async def test_gateway_outage_is_a_failed_refund(uow_factory):
    await store_order(uow_factory, _paid_order())
    gateway = FakeGateway(refund_error=PaymentNetworkError("timeout", provider="vnpay"))

    result = await _service(uow_factory, gateway).process_refund(_request(), CUSTOMER)

    assert not result.success
    assert result.status == "failed"
    async with uow_factory(readonly=True) as uow:
        assert (await uow.order_repository.get_by_id("o1")).status == OrderStatus.COMPLETED


@pytest.mark.asyncio
async def test_missing_order_is_not_found(uow_factory):
    with pytest.raises(RefundNotEligibleException) as exc:
        await _service(uow_factory, FakeGateway()).process_refund(_request("ghost"), CUSTOMER)
    assert exc.value.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,kind",
    [
        (dict(status=OrderStatus.REFUNDED, payment_status=PaymentStatus.REFUNDED), ErrorKind.CONFLICT),
        (dict(status=OrderStatus.CANCELLED, payment_status=PaymentStatus.PENDING), ErrorKind.CONFLICT),
        (dict(status=OrderStatus.PENDING, payment_status=PaymentStatus.PENDING), ErrorKind.CONFLICT),
        (dict(age_days=31), ErrorKind.VALIDATION),
    ],
)
async def test_ineligible_orders(uow_factory, overrides, kind):
    await store_order(uow_factory, _paid_order(**overrides))
    gateway = FakeGateway(refund_result=COMPLETED)

    with pytest.raises(RefundNotEligibleException) as exc:
        await _service(uow_factory, gateway).process_refund(_request(), CUSTOMER)

    assert exc.value.kind == kind
    assert gateway.refunds == []
    assert len(await _activities(uow_factory)) == 1


@pytest.mark.asyncio
async def test_window_boundary_is_inclusive(uow_factory):
    await store_order(uow_factory, _paid_order(age_days=30))
    result = await _service(uow_factory, FakeGateway(refund_result=COMPLETED)).process_refund(_request(), CUSTOMER)
    assert result.success


@pytest.mark.asyncio
async def test_amount_above_total_is_invalid(uow_factory):
    await store_order(uow_factory, _paid_order())
    with pytest.raises(RefundNotEligibleException) as exc:
        await _service(uow_factory, FakeGateway()).process_refund(_request(amount=550001), CUSTOMER)
    assert exc.value.kind == ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_customer_cannot_refund_someone_elses_order(uow_factory):
    await store_order(uow_factory, _paid_order())
    other = CurrentUser(id="u2")
    with pytest.raises(ForbiddenException):
        await _service(uow_factory, FakeGateway()).process_refund(_request(user_id="u2"), other)


@pytest.mark.asyncio
async def test_admin_can_refund_any_order(uow_factory):
    await store_order(uow_factory, _paid_order())
    result = await _service(uow_factory, FakeGateway(refund_result=COMPLETED)).process_refund(
        _request(requested_by="admin", user_id="admin"), ADMIN
    )
    assert result.success


@pytest.mark.asyncio
async def test_unsupported_payment_method(uow_factory):
    await store_order(uow_factory, _paid_order(payment_method="cod"))
    with pytest.raises(PaymentMethodNotSupportedException):
        await _service(uow_factory, FakeGateway()).process_refund(_request(), CUSTOMER)


@pytest.mark.asyncio
async def test_partial_refund_reverses_commission_proportionally(uow_factory):
    order = await store_order(uow_factory, _paid_order(items=PARTNER_COURSE))
    await CommissionService(uow_factory).record_for_order(order)

    result = await _service(uow_factory, FakeGateway(refund_result=COMPLETED)).process_refund(
        _request(amount=275000), CUSTOMER
    )

    assert result.success
    async with uow_factory(readonly=True) as uow:
        [txn] = await uow.commission_repository.list_by_order("o1")
    assert txn.status == CommissionStatus.REFUNDED
    assert txn.refund_amount == 250000


@pytest.mark.asyncio
async def test_commission_reversal_failure_does_not_fail_refund(uow_factory):
    await store_order(uow_factory, _paid_order())

    class Broken:
        async def reverse_for_order(self, order, amount):
            raise RuntimeError("down")

    service = RefundService(uow_factory, {"vnpay": FakeGateway(refund_result=COMPLETED)},
                            commission_service=Broken(), clock=lambda: NOW)
    result = await service.process_refund(_request(), CUSTOMER)
    assert result.success


@pytest.mark.asyncio
async def test_history_and_stats(uow_factory):
    await store_order(uow_factory, _paid_order("o1"))
    await store_order(uow_factory, _paid_order("o2"))
    await store_order(uow_factory, _paid_order("o3", user_id="u2"))
    service = _service(uow_factory, FakeGateway(refund_result=COMPLETED))

    await service.process_refund(_request("o1", amount=200000), CUSTOMER)

    history = await service.get_refund_history("u1")
    assert [(h.order_id, h.amount, h.refund_id) for h in history] == [("o1", 200000, "R1")]
    assert await service.get_refund_history("u2") == []

    stats = await service.get_refund_stats(NOW - timedelta(days=7), datetime.now(timezone.utc) + timedelta(days=1))
    assert stats.total_refunds == 1
    assert stats.total_amount == 200000
    assert stats.avg_refund_amount == 200000
    assert stats.refund_rate == pytest.approx(33.33)


class ReentrantGateway(FakeGateway):
    """Runs a second refund of the same order while the first is at the gateway."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.service = None
        self.inner_error = None

    async def refund(self, req):
        if not self.refunds:
            try:
                await self.service.process_refund(_request(), CUSTOMER)
            except RefundNotEligibleException as exc:
                self.inner_error = exc
        return await super().refund(req)


@pytest.mark.asyncio
async def test_concurrent_refund_reaches_gateway_once(uow_factory):
    await store_order(uow_factory, _paid_order())
    gateway = ReentrantGateway(refund_result=COMPLETED)
    service = _service(uow_factory, gateway)
    gateway.service = service

    result = await service.process_refund(_request(), CUSTOMER)

    assert result.success
    assert len(gateway.refunds) == 1
    assert gateway.inner_error.kind == ErrorKind.CONFLICT
    assert gateway.inner_error.message == "Refund already in progress"
    assert len(await _activities(uow_factory)) == 2
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id("o1")
    assert order.status == OrderStatus.REFUNDED
    assert order.refund_pending is False


@pytest.mark.asyncio
async def test_failed_refund_releases_claim(uow_factory):
    await store_order(uow_factory, _paid_order())
    gateway = FakeGateway(refund_error=PaymentNetworkError("timeout", provider="vnpay"))
    service = _service(uow_factory, gateway)

    assert not (await service.process_refund(_request(), CUSTOMER)).success
    async with uow_factory(readonly=True) as uow:
        assert (await uow.order_repository.get_by_id("o1")).refund_pending is False

    gateway.refund_error, gateway.refund_result = None, COMPLETED
    assert (await service.process_refund(_request(), CUSTOMER)).success
    assert len(gateway.refunds) == 2


@pytest.mark.asyncio
async def test_unrecorded_refund_keeps_order_locked(uow_factory, monkeypatch):
    await store_order(uow_factory, _paid_order())
    gateway = FakeGateway(refund_result=COMPLETED)
    service = _service(uow_factory, gateway)

    async def broken_mark_refunded(self, order, refund_id, amount, reason=None):
        raise OrderStateConflictException(order.id, order.status.value, "Order was modified concurrently")

    monkeypatch.setattr(OrderDomainService, "mark_refunded", broken_mark_refunded)
    result = await service.process_refund(_request(), CUSTOMER)

    assert result.success
    assert result.refund_id == "R1"
    activities = await _activities(uow_factory)
    assert len(activities) == 1
    assert activities[0].description.startswith("Refund completed at gateway but not recorded")
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id("o1")
    assert order.status == OrderStatus.COMPLETED
    assert order.refund_pending is True

    with pytest.raises(RefundNotEligibleException):
        await service.process_refund(_request(), CUSTOMER)
    assert len(gateway.refunds) == 1
