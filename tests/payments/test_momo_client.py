import base64
import json
from datetime import datetime, timezone

import httpx
import pytest

from application.dtos.payments import CustomerInfo, GatewayRefundRequest
from infrastructure.external.payments.base import hmac_hex
from infrastructure.external.payments.exceptions import PaymentProviderError
from infrastructure.external.payments.momo_client import MoMoClient
from infrastructure.external.payments.schemas import MoMoCallback
from tests.factories import MOMO_ACCESS_KEY, MOMO_SECRET_KEY, make_order, momo_callback

FIXED_NOW = datetime(2024, 1, 1, 5, 0, tzinfo=timezone.utc)
CUSTOMER = CustomerInfo(name="Nguyễn Văn A", email="a@example.com", phone="0901234567")


def _client(momo_settings, handler):
    return MoMoClient(
        momo_settings,
        retry={"max": 0, "base": 0.01},
        transport=httpx.MockTransport(handler),
        clock=lambda: FIXED_NOW,
    )


def test_raw_signature_is_sorted_and_unencoded():
    raw = MoMoClient.raw_signature({"orderId": "o1", "amount": 1000, "orderInfo": "Thanh toán"}, "AK")
    assert raw == "accessKey=AK&amount=1000&orderId=o1&orderInfo=Thanh toán"


@pytest.mark.asyncio
async def test_create_payment_request(momo_settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "resultCode": 0,
            "payUrl": "https://test-payment.momo.vn/pay/abc",
            "qrCodeUrl": "momo://qr",
            "deeplink": "momo://app",
        })

    order = make_order("ord1")
    redirect = await _client(momo_settings, handler).create_payment_request(order, CUSTOMER)

    body = seen["body"]
    assert seen["url"].endswith("/create")
    assert body["orderId"] == "ord1"
    assert body["requestId"] == "ord1_1704085200000"
    assert body["amount"] == order.total
    assert body["requestType"] == "captureWallet"
    assert json.loads(base64.b64decode(body["extraData"])) == {"orderNumber": "ORD-ord1"}
    assert body["items"][0]["totalPrice"] == 500000
    signed = {k: body[k] for k in (
        "amount", "extraData", "ipnUrl", "orderId", "orderInfo",
        "partnerCode", "redirectUrl", "requestId", "requestType",
    )}
    assert body["signature"] == hmac_hex(MOMO_SECRET_KEY, MoMoClient.raw_signature(signed, MOMO_ACCESS_KEY))

    assert redirect.redirect_url == "https://test-payment.momo.vn/pay/abc"
    assert redirect.gateway_reference == "ord1_1704085200000"
    assert redirect.qr_code_url == "momo://qr"
    assert redirect.deeplink == "momo://app"


@pytest.mark.asyncio
async def test_create_refused_by_gateway(momo_settings):
    def handler(request):
        return httpx.Response(200, json={"resultCode": 41, "message": "OrderId bị trùng"})

    with pytest.raises(PaymentProviderError) as exc:
        await _client(momo_settings, handler).create_payment_request(make_order(), CUSTOMER)
    assert exc.value.details["provider_code"] == "41"


@pytest.mark.asyncio
async def test_gateway_5xx_is_a_provider_error(momo_settings):
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(PaymentProviderError):
        await _client(momo_settings, handler).create_payment_request(make_order(), CUSTOMER)


def test_verify_success_ipn(momo_client):
    result = momo_client.verify_callback(momo_callback(momo_client, "ord1", 550000))
    assert result.is_valid and result.is_success
    assert result.order_id == "ord1"
    assert result.amount == 550000
    assert result.gateway_transaction_id == "3000001"
    assert result.result_code == "0"


def test_verify_failed_ipn(momo_client):
    result = momo_client.verify_callback(momo_callback(momo_client, "ord1", 550000, result_code=1006))
    assert result.is_valid
    assert not result.is_success
    assert result.message == "Giao dịch thất bại do người dùng đã từ chối xác nhận thanh toán"


@pytest.mark.parametrize("field", MoMoCallback.SIGNED)
def test_tampered_signed_field_is_invalid(momo_client, field):
    body = momo_callback(momo_client, "ord1", 550000)
    value = body[field]
    body[field] = value + 1 if isinstance(value, int) else f"{value}x"
    result = momo_client.verify_callback(body)
    assert not result.is_valid
    assert not result.is_success


def test_callback_fixture_covers_every_signed_field(momo_client):
    body = momo_callback(momo_client, "ord1", 550000)
    assert set(MoMoCallback.SIGNED) <= set(body)


def test_missing_signature_is_invalid(momo_client):
    body = momo_callback(momo_client, "ord1", 550000)
    body.pop("signature")
    assert not momo_client.verify_callback(body).is_valid


def test_ipn_answers(momo_client):
    assert momo_client.acknowledge() == {"resultCode": 0, "message": "Success"}
    assert momo_client.reject("invalid_signature")["resultCode"] == 11
    assert momo_client.reject("order_not_found")["resultCode"] == 42
    assert momo_client.reject("amount_mismatch")["resultCode"] == 21
    assert momo_client.reject("already_confirmed")["resultCode"] == 0
    assert momo_client.reject("unknown")["resultCode"] == 99


def _refund(transaction_id="3000001"):
    return GatewayRefundRequest(order_id="ord1", amount=550000, total=550000, reason="Khách yêu cầu",
                                transaction_id=transaction_id)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code,success,status",
    [(0, True, "completed"), (7000, True, "pending"), (1001, False, "failed")],
)
async def test_refund_result_codes(momo_settings, code, success, status):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"resultCode": code, "transId": 9000001})

    result = await _client(momo_settings, handler).refund(_refund())
    assert seen["url"].endswith("/refund")
    assert seen["body"]["orderId"] == "ord1_refund_1704085200000"
    assert seen["body"]["transId"] == "3000001"
    assert result.success is success
    assert result.status == status


@pytest.mark.asyncio
async def test_refund_requires_transaction_id(momo_settings):
    def handler(request):
        raise AssertionError("gateway must not be called")

    with pytest.raises(PaymentProviderError):
        await _client(momo_settings, handler).refund(_refund(transaction_id=None))
