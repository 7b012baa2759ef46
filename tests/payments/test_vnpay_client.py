import hashlib
import json
from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlsplit

import httpx
import pytest

from application.dtos.payments import CustomerInfo, GatewayRefundRequest
from core.settings import VNPaySettings
from infrastructure.external.payments.base import canonical_query, hmac_hex
from infrastructure.external.payments.exceptions import PaymentNetworkError, PaymentProviderError
from infrastructure.external.payments.vnpay_client import VNPayClient, order_id_from_reference
from shared.codes import ErrorKind
from tests.factories import VNPAY_SECRET, StubIPResolver
from tests.factories import make_order, vnpay_callback

FIXED_NOW = datetime(2024, 1, 1, 5, 0, tzinfo=timezone.utc)
CUSTOMER = CustomerInfo(name="Nguyễn Văn A", email="a@example.com", phone="0901234567")


def _client(vnpay_settings, handler=None):
    transport = httpx.MockTransport(handler) if handler else None
    return VNPayClient(
        vnpay_settings,
        ip_resolver=StubIPResolver(),
        retry={"max": 0, "base": 0.01},
        transport=transport,
        clock=lambda: FIXED_NOW,
    )


@pytest.mark.asyncio
async def test_payment_url_is_signed_over_sorted_encoded_params(vnpay_settings):
    client = _client(vnpay_settings)
    order = make_order("ord1")
    redirect = await client.create_payment_request(order, CUSTOMER)

    parts = urlsplit(redirect.redirect_url)
    params = dict(parse_qsl(parts.query))
    received = params.pop("vnp_SecureHash")

    assert params["vnp_Amount"] == str(order.total * 100)
    assert params["vnp_TxnRef"] == f"ord1_{int(FIXED_NOW.timestamp() * 1000)}"
    assert params["vnp_CreateDate"] == "20240101120000"
    assert params["vnp_ExpireDate"] == "20240101121500"
    assert params["vnp_OrderInfo"] == "Thanh toan don hang ORD-ord1"
    assert params["vnp_IpAddr"] == "127.0.0.1"
    assert redirect.gateway_reference == params["vnp_TxnRef"]
    expected = hmac_hex(VNPAY_SECRET, canonical_query(params, url_encode=True), hashlib.sha512)
    assert received == expected


@pytest.mark.asyncio
async def test_missing_credentials_is_a_payment_error():
    client = VNPayClient(VNPaySettings(), ip_resolver=StubIPResolver())
    with pytest.raises(PaymentProviderError) as exc:
        await client.create_payment_request(make_order(), CUSTOMER)
    assert exc.value.kind == ErrorKind.PAYMENT


def test_verify_success_callback(vnpay_client):
    result = vnpay_client.verify_callback(vnpay_callback(vnpay_client, "ord1", 550000))
    assert result.is_valid and result.is_success
    assert result.order_id == "ord1"
    assert result.amount == 550000
    assert result.gateway_transaction_id == "14000001"
    assert result.message == "Giao dịch thành công"


def test_verify_failed_payment_code(vnpay_client):
    result = vnpay_client.verify_callback(vnpay_callback(vnpay_client, "ord1", 550000, code="24"))
    assert result.is_valid
    assert not result.is_success
    assert result.message == "Khách hàng hủy giao dịch"


VNPAY_SIGNED_FIELDS = [
    "vnp_TmnCode", "vnp_Amount", "vnp_BankCode", "vnp_OrderInfo", "vnp_PayDate",
    "vnp_ResponseCode", "vnp_TransactionNo", "vnp_TransactionStatus", "vnp_TxnRef",
]


def test_callback_fixture_covers_every_signed_field(vnpay_client):
    payload = vnpay_callback(vnpay_client, "ord1", 550000)
    assert set(payload) - {"vnp_SecureHash"} == set(VNPAY_SIGNED_FIELDS)


@pytest.mark.parametrize("field", VNPAY_SIGNED_FIELDS)
def test_tampered_field_fails_signature(vnpay_client, field):
    payload = vnpay_callback(vnpay_client, "ord1", 550000)
    payload[field] = payload[field] + "1"
    result = vnpay_client.verify_callback(payload)
    assert not result.is_valid
    assert not result.is_success


def test_tampered_amount_keeps_order_id(vnpay_client):
    payload = vnpay_callback(vnpay_client, "ord1", 550000)
    payload["vnp_Amount"] = "100"
    result = vnpay_client.verify_callback(payload)
    assert not result.is_valid
    assert result.order_id == "ord1"


def test_signature_comparison_ignores_case(vnpay_client):
    payload = vnpay_callback(vnpay_client, "ord1", 550000)
    payload["vnp_SecureHash"] = payload["vnp_SecureHash"].upper()
    assert vnpay_client.verify_callback(payload).is_valid


def test_unknown_fields_do_not_affect_signature(vnpay_client):
    payload = vnpay_callback(vnpay_client, "ord1", 550000)
    payload["utm_source"] = "email"
    assert vnpay_client.verify_callback(payload).is_valid


@pytest.mark.parametrize("payload", [{}, {"vnp_TxnRef": "x"}, {"foo": "bar"}])
def test_unparsable_callback_never_raises(vnpay_client, payload):
    result = vnpay_client.verify_callback(payload)
    assert not result.is_valid
    assert not result.is_success


def test_order_id_from_reference():
    assert order_id_from_reference("abc123_1704085200000") == "abc123"
    assert order_id_from_reference("abc123") == "abc123"


def test_rejection_bodies(vnpay_client):
    assert vnpay_client.acknowledge() == {"RspCode": "00", "Message": "Confirm Success"}
    assert vnpay_client.reject("invalid_signature")["RspCode"] == "97"
    assert vnpay_client.reject("order_not_found")["RspCode"] == "01"
    assert vnpay_client.reject("already_confirmed")["RspCode"] == "02"
    assert vnpay_client.reject("amount_mismatch")["RspCode"] == "04"
    assert vnpay_client.reject("anything else")["RspCode"] == "99"


def _refund_request(amount=550000):
    return GatewayRefundRequest(
        order_id="ord1",
        amount=amount,
        total=550000,
        reason="Khách yêu cầu",
        transaction_id="14000001",
        payment_reference="ord1_1704085200000",
        requested_by="admin",
    )


@pytest.mark.asyncio
async def test_full_refund_posts_signed_request(vnpay_settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"vnp_ResponseCode": "00", "vnp_TransactionNo": "R100"})

    result = await _client(vnpay_settings, handler).refund(_refund_request())

    assert result.success and result.status == "completed"
    assert result.refund_id == "R100"
    assert seen["vnp_TransactionType"] == "02"
    assert seen["vnp_Amount"] == "55000000"
    assert seen["vnp_TxnRef"] == "ord1_1704085200000"
    # Original payment time recovered from the txn ref, in Vietnam time
    assert seen["vnp_TransactionDate"] == "20240101120000"
    hash_data = "|".join(seen[k] for k in (
        "vnp_RequestId", "vnp_Version", "vnp_Command", "vnp_TmnCode", "vnp_TransactionType", "vnp_TxnRef",
        "vnp_Amount", "vnp_TransactionNo", "vnp_TransactionDate", "vnp_CreateBy", "vnp_CreateDate",
        "vnp_IpAddr", "vnp_OrderInfo",
    ))
    assert seen["vnp_SecureHash"] == hmac_hex(VNPAY_SECRET, hash_data, hashlib.sha512)


@pytest.mark.asyncio
async def test_partial_refund_and_pending_code(vnpay_settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"vnp_ResponseCode": "94"})

    result = await _client(vnpay_settings, handler).refund(_refund_request(amount=100000))
    assert seen["vnp_TransactionType"] == "03"
    assert result.success
    assert result.status == "pending"


@pytest.mark.asyncio
async def test_refund_rejected_by_gateway(vnpay_settings):
    def handler(request):
        return httpx.Response(200, json={"vnp_ResponseCode": "91"})

    result = await _client(vnpay_settings, handler).refund(_refund_request())
    assert not result.success
    assert result.status == "failed"
    assert result.message == "Không tìm thấy giao dịch yêu cầu hoàn trả"


@pytest.mark.asyncio
async def test_unreachable_gateway_is_a_network_error(vnpay_settings):
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(PaymentNetworkError) as exc:
        await _client(vnpay_settings, handler).refund(_refund_request())
    assert exc.value.kind == ErrorKind.NETWORK
