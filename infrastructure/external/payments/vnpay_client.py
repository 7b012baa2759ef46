"""
VNPay adapter: signed redirect URL, IPN/return verification and merchant-API refunds.

Signing recipe: sort the ``vnp_*`` parameters, join ``key=quote_plus(value)``
with ``&`` and HMAC-SHA512 the result with the merchant hash secret.
"""
from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

import httpx
from pydantic import ValidationError

from application.dtos.payments import (
    CallbackVerification,
    CustomerInfo,
    GatewayRefundRequest,
    GatewayRefundResult,
    PaymentRedirect,
)
from core.settings import VNPaySettings
from domain.order.entity import Order
from infrastructure.external.payments.base import (
    BasePaymentClient,
    canonical_query,
    hmac_hex,
    signatures_match,
)
from infrastructure.external.payments.client_ip import ClientIPResolver
from infrastructure.external.payments.exceptions import PaymentProviderError
from infrastructure.external.payments.schemas import (
    VNPayCallback,
    VNPayPaymentRequest,
    VNPayRefundRequest,
    VNPayRefundResponse,
)
from shared.codes.payment_codes import VNPAY_SUCCESS_CODE, vnpay_message

VIETNAM_TZ = timezone(timedelta(hours=7))
DATE_FORMAT = "%Y%m%d%H%M%S"
AMOUNT_MULTIPLIER = 100

VNPAY_REFUND_MESSAGES = {
    "00": "Yêu cầu hoàn tiền thành công",
    "02": "Mã định danh kết nối không hợp lệ",
    "03": "Dữ liệu gửi sang không đúng định dạng",
    "91": "Không tìm thấy giao dịch yêu cầu hoàn trả",
    "94": "Giao dịch đang được xử lý hoàn tiền",
    "95": "Giao dịch này không thành công bên VNPAY",
    "97": "Checksum không hợp lệ",
    "99": "Các lỗi khác",
}


def order_id_from_reference(txn_ref: str) -> str:
    """``{order_id}_{timestamp}`` -> ``order_id``."""
    return txn_ref.split("_", 1)[0]


def _format(dt: datetime) -> str:
    return dt.astimezone(VIETNAM_TZ).strftime(DATE_FORMAT)


class VNPayClient(BasePaymentClient):
    provider = "vnpay"

    ACK = {"RspCode": "00", "Message": "Confirm Success"}
    REJECTIONS = {
        "invalid_signature": {"RspCode": "97", "Message": "Invalid Checksum"},
        "order_not_found": {"RspCode": "01", "Message": "Order not found"},
        "already_confirmed": {"RspCode": "02", "Message": "Order already confirmed"},
        "amount_mismatch": {"RspCode": "04", "Message": "Invalid amount"},
        "unknown": {"RspCode": "99", "Message": "Unknown error"},
    }

    def __init__(
        self,
        config: VNPaySettings,
        *,
        ip_resolver: Optional[ClientIPResolver] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        super().__init__(timeouts=timeouts, retry=retry, transport=transport)
        self._cfg = config
        self._ip_resolver = ip_resolver or ClientIPResolver()
        self._clock = clock

    @property
    def _secret(self) -> Optional[str]:
        return self._cfg.hash_secret.get_secret_value() if self._cfg.hash_secret else None

    def _require_config(self) -> str:
        secret = self._secret
        if not self._cfg.tmn_code or not secret:
            raise PaymentProviderError("VNPay credentials are not configured", provider=self.provider)
        return secret

    def sign(self, params: Mapping[str, Any]) -> str:
        return hmac_hex(self._require_config(), canonical_query(params, url_encode=True), hashlib.sha512)

    async def create_payment_request(self, order: Order, customer: CustomerInfo) -> PaymentRedirect:
        secret = self._require_config()
        now = self._clock()
        txn_ref = f"{order.id}_{int(now.timestamp() * 1000)}"
        ip_address = await self._ip_resolver.resolve(customer.ip_address)

        request = VNPayPaymentRequest(
            vnp_Version=self._cfg.version,
            vnp_Command=self._cfg.command,
            vnp_TmnCode=self._cfg.tmn_code,
            vnp_Amount=str(order.total * AMOUNT_MULTIPLIER),
            vnp_CreateDate=_format(now),
            vnp_CurrCode=self._cfg.currency,
            vnp_IpAddr=ip_address,
            vnp_Locale=customer.locale or self._cfg.locale,
            vnp_OrderInfo=f"Thanh toan don hang {order.order_number}",
            vnp_OrderType=self._cfg.order_type,
            vnp_ReturnUrl=self._cfg.return_url,
            vnp_TxnRef=txn_ref,
            vnp_ExpireDate=_format(now + timedelta(minutes=self._cfg.expire_minutes)),
            vnp_BankCode=customer.bank_code or None,
        )
        query = canonical_query(request.signed_fields(), url_encode=True)
        secure_hash = hmac_hex(secret, query, hashlib.sha512)
        self._log("payment_request_created", order_id=order.id, txn_ref=txn_ref, amount=order.total)
        return PaymentRedirect(
            redirect_url=f"{self._cfg.payment_url}?{query}&vnp_SecureHash={secure_hash}",
            gateway_reference=txn_ref,
            provider=self.provider,
        )

    def verify_callback(self, payload: Mapping[str, Any]) -> CallbackVerification:
        secret = self._secret
        if not secret:
            return self._invalid("gateway not configured")
        try:
            callback = VNPayCallback.model_validate(dict(payload))
        except ValidationError:
            return self._invalid("unverifiable payload")

        order_id = order_id_from_reference(callback.vnp_TxnRef)
        expected = hmac_hex(secret, canonical_query(callback.signed_fields(), url_encode=True), hashlib.sha512)
        if not signatures_match(expected, callback.vnp_SecureHash):
            return self._invalid(order_id=order_id, gateway_reference=callback.vnp_TxnRef)
        if not callback.vnp_Amount.isdigit():
            return self._invalid("unverifiable payload", order_id=order_id, gateway_reference=callback.vnp_TxnRef)

        code = callback.vnp_ResponseCode
        return CallbackVerification(
            is_valid=True,
            is_success=code == VNPAY_SUCCESS_CODE,
            order_id=order_id,
            amount=int(callback.vnp_Amount) // AMOUNT_MULTIPLIER,
            gateway_transaction_id=callback.vnp_TransactionNo,
            gateway_reference=callback.vnp_TxnRef,
            result_code=code,
            message=vnpay_message(code),
        )

    def _transaction_date(self, req: GatewayRefundRequest) -> str:
        """Creation time of the original payment, recovered from the txn ref timestamp."""
        suffix = (req.payment_reference or "").rpartition("_")[2]
        if suffix.isdigit():
            return _format(datetime.fromtimestamp(int(suffix) / 1000, tz=timezone.utc))
        return _format(req.paid_at or self._clock())

    async def refund(self, req: GatewayRefundRequest) -> GatewayRefundResult:
        secret = self._require_config()
        now = self._clock()
        body = VNPayRefundRequest(
            vnp_RequestId=uuid.uuid4().hex,
            vnp_Version=self._cfg.version,
            vnp_TmnCode=self._cfg.tmn_code,
            vnp_TransactionType="02" if req.amount >= req.total else "03",
            vnp_TxnRef=req.payment_reference or req.order_id,
            vnp_Amount=str(req.amount * AMOUNT_MULTIPLIER),
            vnp_TransactionNo=req.transaction_id or "",
            vnp_TransactionDate=self._transaction_date(req),
            vnp_CreateBy=req.requested_by,
            vnp_CreateDate=_format(now),
            vnp_IpAddr=await self._ip_resolver.resolve(req.client_ip),
            vnp_OrderInfo=f"Hoan tien don hang {req.order_id}",
        )
        body.vnp_SecureHash = hmac_hex(secret, body.hash_data(), hashlib.sha512)

        data = await self._post_json(self._cfg.api_url, body.model_dump())
        try:
            resp = VNPayRefundResponse.model_validate(data)
        except ValidationError as exc:
            raise PaymentProviderError("VNPay refund response malformed", provider=self.provider) from exc

        code = resp.vnp_ResponseCode
        message = VNPAY_REFUND_MESSAGES.get(code or "", resp.vnp_Message or vnpay_message(code))
        self._log("refund_response", order_id=req.order_id, result_code=code)
        if code == "00":
            return GatewayRefundResult(
                success=True, status="completed", refund_id=resp.vnp_TransactionNo or body.vnp_RequestId,
                message=message, result_code=code,
            )
        if code == "94":
            return GatewayRefundResult(
                success=True, status="pending", refund_id=body.vnp_RequestId, message=message, result_code=code,
            )
        return GatewayRefundResult(success=False, status="failed", message=message, result_code=code)

    def acknowledge(self, verification: Optional[CallbackVerification] = None) -> dict[str, Any]:
        return dict(self.ACK)

    def reject(self, reason: str) -> dict[str, Any]:
        return dict(self.REJECTIONS.get(reason, self.REJECTIONS["unknown"]))
