import httpx
import pytest

from api.dependencies import get_uow_factory
from application.dtos.payments import GatewayRefundResult
from core.settings import payment_settings
from domain.order.entity import OrderStatus, PaymentStatus
from main import app
from tests.factories import FakeGateway, make_order, store_order, vnpay_callback

CUSTOMER = {"X-User-Id": "u1"}
ADMIN = {"X-User-Id": "admin", "X-User-Role": "admin"}
COURSE_ORDER = {"items": [{"type": "course", "item_id": "c1", "title": "Python cơ bản", "price": 900000}]}


@pytest.fixture
async def client(uow_factory, vnpay_client):
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.state.payment_gateways = {"vnpay": vnpay_client, "momo": FakeGateway("momo")}
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
    app.state.payment_gateways = None


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_missing_identity_is_unauthorized(client):
    resp = await client.post("/api/v1/orders", json=COURSE_ORDER)
    assert resp.status_code == 401
    assert resp.json()["error"]["kind"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_create_and_fetch_order(client):
    resp = await client.post("/api/v1/orders", json=COURSE_ORDER, headers=CUSTOMER)

    assert resp.status_code == 201
    body = resp.json()
    assert body["code"] == 0
    order = body["data"]
    assert (order["subtotal"], order["tax"], order["shipping_fee"], order["total"]) == (900000, 90000, 0, 990000)
    assert order["status"] == "pending"

    fetched = await client.get(f"/api/v1/orders/{order['id']}", headers=CUSTOMER)
    assert fetched.json()["data"]["order_number"] == order["order_number"]

    foreign = await client.get(f"/api/v1/orders/{order['id']}", headers={"X-User-Id": "u2"})
    assert foreign.status_code == 403


@pytest.mark.asyncio
async def test_invalid_order_body_is_422(client):
    resp = await client.post("/api/v1/orders", json={"items": [{"type": "ebook"}]}, headers=CUSTOMER)
    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "ValidationError"


@pytest.mark.asyncio
async def test_list_orders_is_paginated(client, uow_factory):
    for i in range(3):
        await store_order(uow_factory, make_order(f"o{i}"))
    resp = await client.get("/api/v1/orders", params={"page": 1, "size": 2}, headers=CUSTOMER)
    data = resp.json()["data"]
    assert (data["total"], data["pages"], len(data["items"])) == (3, 2, 2)


@pytest.mark.asyncio
async def test_unknown_order_is_404_in_vietnamese_by_default(client):
    resp = await client.get("/api/v1/orders/ghost", headers=CUSTOMER)
    assert resp.status_code == 404
    assert resp.json()["error"]["locale"] == "vi"


@pytest.mark.asyncio
async def test_create_payment_returns_redirect(client, uow_factory):
    await store_order(uow_factory, make_order("o1"))
    resp = await client.post(
        "/api/v1/payments",
        json={"order_id": "o1", "payment_method": "vnpay",
              "customer_info": {"name": "Nguyễn Văn A", "email": "a@example.com"}},
        headers=CUSTOMER,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["provider"] == "vnpay"
    assert "vnp_SecureHash=" in data["redirect_url"]

    status = await client.get("/api/v1/payment/status/o1", headers=CUSTOMER)
    assert status.json()["data"]["status"] == "processing"


@pytest.mark.asyncio
async def test_vnpay_ipn_answers_with_gateway_json(client, uow_factory, vnpay_client):
    await store_order(uow_factory, make_order("o1", status=OrderStatus.PROCESSING,
                                              payment_status=PaymentStatus.PROCESSING, payment_method="vnpay"))
    params = vnpay_callback(vnpay_client, "o1", 550000)

    resp = await client.get("/api/v1/payments/vnpay/ipn", params=params)

    assert resp.status_code == 200
    assert resp.json() == {"RspCode": "00", "Message": "Confirm Success"}
    again = await client.get("/api/v1/payments/vnpay/ipn", params=params)
    assert again.json()["RspCode"] == "02"
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id("o1")
    assert order.status == OrderStatus.COMPLETED


@pytest.mark.asyncio
async def test_vnpay_ipn_with_bad_signature(client, uow_factory, vnpay_client):
    params = vnpay_callback(vnpay_client, "o1", 550000)
    params["vnp_Amount"] = "100"
    resp = await client.get("/api/v1/payments/vnpay/ipn", params=params)
    assert resp.json()["RspCode"] == "97"


@pytest.mark.asyncio
async def test_vnpay_return_uses_envelope(client, uow_factory, vnpay_client):
    await store_order(uow_factory, make_order("o1", status=OrderStatus.PROCESSING,
                                              payment_status=PaymentStatus.PROCESSING, payment_method="vnpay"))
    resp = await client.get("/api/v1/payments/vnpay/return", params=vnpay_callback(vnpay_client, "o1", 550000))
    data = resp.json()["data"]
    assert (data["order_id"], data["success"], data["outcome"]) == ("o1", True, "success")


@pytest.mark.asyncio
async def test_ipn_from_unlisted_ip_is_forbidden(client, vnpay_client, monkeypatch):
    monkeypatch.setattr(payment_settings.webhook, "ip_allowlist", {"vnpay": ["203.0.113.0/24"]})
    resp = await client.get("/api/v1/payments/vnpay/ipn", params=vnpay_callback(vnpay_client, "o1", 550000))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_refund_flow_and_admin_stats(client, uow_factory):
    await store_order(uow_factory, make_order(
        "o1", status=OrderStatus.COMPLETED, payment_status=PaymentStatus.COMPLETED,
        payment_method="momo", transaction_id="3000001",
    ))
    app.state.payment_gateways["momo"] = FakeGateway(
        "momo", refund_result=GatewayRefundResult(success=True, status="completed", refund_id="R1")
    )

    resp = await client.post("/api/v1/refunds", json={"order_id": "o1", "amount": 550000, "reason": "Trùng đơn"},
                             headers=CUSTOMER)
    assert resp.status_code == 200
    assert resp.json()["data"]["success"] is True

    history = await client.get("/api/v1/refunds/history", headers=CUSTOMER)
    assert [item["order_id"] for item in history.json()["data"]] == ["o1"]

    forbidden = await client.get("/api/v1/refunds/stats", headers=CUSTOMER)
    assert forbidden.status_code == 403
    stats = await client.get("/api/v1/refunds/stats", headers=ADMIN)
    assert stats.json()["data"]["total_refunds"] == 1


@pytest.mark.asyncio
async def test_refund_of_unpaid_order_is_conflict(client, uow_factory):
    await store_order(uow_factory, make_order("o1", payment_method="vnpay"))
    resp = await client.post("/api/v1/refunds", json={"order_id": "o1", "amount": 1000, "reason": "x"},
                             headers=CUSTOMER)
    assert resp.status_code == 409
