"""
MoMo e-wallet adapter (v2 gateway API).

Raw signature: the signed fields plus ``accessKey``, sorted, joined as
``key=value`` with ``&`` (no URL encoding), HMAC-SHA256 with the secret key.
"""
from __future__ import annotations

import base64
import json
from datetime import datetime, timezone
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
from core.settings import MoMoSettings
from domain.order.entity import Order
from infrastructure.external.payments.base import (
    BasePaymentClient,
    canonical_query,
    hmac_hex,
    signatures_match,
)
from infrastructure.external.payments.exceptions import PaymentProviderError
from infrastructure.external.payments.schemas import (
    MoMoCallback,
    MoMoCreateRequest,
    MoMoCreateResponse,
    MoMoItem,
    MoMoRefundRequest,
    MoMoRefundResponse,
    MoMoUserInfo,
)
from shared.codes.payment_codes import MOMO_SUCCESS_CODE, momo_message

PENDING_REFUND_CODES = frozenset({1000, 7000, 8000})


def _encode_extra(data: dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(data, separators=(",", ":")).encode("utf-8")).decode("ascii")


class MoMoClient(BasePaymentClient):
    provider = "momo"

    ACK_BODY = {"resultCode": 0, "message": "Success"}
    REJECTIONS = {
        "invalid_signature": {"resultCode": 11, "message": "Invalid signature"},
        "order_not_found": {"resultCode": 42, "message": "Order not found"},
        "amount_mismatch": {"resultCode": 21, "message": "Invalid amount"},
        "already_confirmed": {"resultCode": 0, "message": "Order already confirmed"},
        "unknown": {"resultCode": 99, "message": "Unknown error"},
    }

    def __init__(
        self,
        config: MoMoSettings,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        super().__init__(timeouts=timeouts, retry=retry, transport=transport)
        self._cfg = config
        self._clock = clock

    def _credentials(self) -> Optional[tuple[str, str]]:
        if not (self._cfg.partner_code and self._cfg.access_key and self._cfg.secret_key):
            return None
        return self._cfg.access_key.get_secret_value(), self._cfg.secret_key.get_secret_value()

    def _require_config(self) -> tuple[str, str]:
        creds = self._credentials()
        if creds is None:
            raise PaymentProviderError("MoMo credentials are not configured", provider=self.provider)
        return creds

    @staticmethod
    def raw_signature(fields: Mapping[str, Any], access_key: str) -> str:
        return canonical_query({**fields, "accessKey": access_key}, url_encode=False)

    def sign(self, fields: Mapping[str, Any]) -> str:
        access_key, secret_key = self._require_config()
        return hmac_hex(secret_key, self.raw_signature(fields, access_key))

    def _timestamp_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    @staticmethod
    def _items(order: Order) -> list[MoMoItem]:
        return [
            MoMoItem(
                id=item.item_id,
                name=item.title,
                description=item.description,
                category=item.category or item.type.value,
                price=item.price,
                quantity=item.quantity,
                totalPrice=item.line_total,
            )
            for item in order.items
        ]

    async def create_payment_request(self, order: Order, customer: CustomerInfo) -> PaymentRedirect:
        self._require_config()
        request_id = f"{order.id}_{self._timestamp_ms()}"
        request = MoMoCreateRequest(
            partnerCode=self._cfg.partner_code,
            partnerName=self._cfg.partner_name,
            storeId=self._cfg.store_id,
            requestId=request_id,
            amount=order.total,
            orderId=order.id,
            orderInfo=f"Thanh toán đơn hàng {order.order_number}",
            redirectUrl=self._cfg.redirect_url,
            ipnUrl=self._cfg.ipn_url,
            lang="en" if customer.locale == "en" else self._cfg.lang,
            requestType=self._cfg.request_type,
            autoCapture=self._cfg.auto_capture,
            extraData=_encode_extra({"orderNumber": order.order_number}),
            items=self._items(order),
            userInfo=MoMoUserInfo(name=customer.name, phoneNumber=customer.phone, email=customer.email),
        )
        request.signature = self.sign(request.signed_fields())

        data = await self._post_json(f"{self._cfg.endpoint}/create", request.model_dump(exclude_none=True))
        try:
            resp = MoMoCreateResponse.model_validate(data)
        except ValidationError as exc:
            raise PaymentProviderError("MoMo create response malformed", provider=self.provider) from exc

        if resp.resultCode != MOMO_SUCCESS_CODE or not resp.payUrl:
            self._log("payment_request_refused", order_id=order.id, result_code=resp.resultCode)
            raise PaymentProviderError(
                resp.message or momo_message(resp.resultCode),
                provider=self.provider,
                provider_code=str(resp.resultCode),
            )
        self._log("payment_request_created", order_id=order.id, request_id=request_id, amount=order.total)
        return PaymentRedirect(
            redirect_url=resp.payUrl,
            gateway_reference=request_id,
            provider=self.provider,
            qr_code_url=resp.qrCodeUrl,
            deeplink=resp.deeplink,
        )

    def verify_callback(self, payload: Mapping[str, Any]) -> CallbackVerification:
        creds = self._credentials()
        if creds is None:
            return self._invalid("gateway not configured")
        access_key, secret_key = creds
        try:
            callback = MoMoCallback.model_validate(dict(payload))
        except ValidationError:
            return self._invalid("unverifiable payload")

        expected = hmac_hex(secret_key, self.raw_signature(callback.signed_fields(), access_key))
        if not signatures_match(expected, callback.signature):
            return self._invalid(order_id=callback.orderId, gateway_reference=callback.requestId)

        return CallbackVerification(
            is_valid=True,
            is_success=callback.resultCode == MOMO_SUCCESS_CODE,
            order_id=callback.orderId,
            amount=callback.amount,
            gateway_transaction_id=str(callback.transId),
            gateway_reference=callback.requestId,
            result_code=str(callback.resultCode),
            message=momo_message(callback.resultCode),
        )

    async def refund(self, req: GatewayRefundRequest) -> GatewayRefundResult:
        self._require_config()
        if not req.transaction_id:
            raise PaymentProviderError(
                "MoMo refund requires the original transaction id",
                provider=self.provider,
                details={"order_id": req.order_id},
            )
        ts = self._timestamp_ms()
        # MoMo expects a fresh merchant orderId for each refund request.
        body = MoMoRefundRequest(
            partnerCode=self._cfg.partner_code,
            orderId=f"{req.order_id}_refund_{ts}",
            requestId=f"{req.order_id}_{ts}",
            amount=req.amount,
            transId=req.transaction_id,
            lang=self._cfg.lang,
            description=req.reason or f"Hoàn tiền đơn hàng {req.order_id}",
        )
        body.signature = self.sign(body.signed_fields())

        data = await self._post_json(f"{self._cfg.endpoint}/refund", body.model_dump())
        try:
            resp = MoMoRefundResponse.model_validate(data)
        except ValidationError as exc:
            raise PaymentProviderError("MoMo refund response malformed", provider=self.provider) from exc

        code = resp.resultCode
        message = resp.message or momo_message(code)
        self._log("refund_response", order_id=req.order_id, result_code=code)
        refund_id = str(resp.transId) if resp.transId is not None else body.requestId
        if code == MOMO_SUCCESS_CODE:
            return GatewayRefundResult(
                success=True, status="completed", refund_id=refund_id, message=message, result_code=str(code)
            )
        if code in PENDING_REFUND_CODES:
            return GatewayRefundResult(
                success=True, status="pending", refund_id=body.requestId, message=message, result_code=str(code)
            )
        return GatewayRefundResult(success=False, status="failed", message=message, result_code=str(code))

    def acknowledge(self, verification: Optional[CallbackVerification] = None) -> dict[str, Any]:
        return dict(self.ACK_BODY)

    def reject(self, reason: str) -> dict[str, Any]:
        return dict(self.REJECTIONS.get(reason, self.REJECTIONS["unknown"]))
