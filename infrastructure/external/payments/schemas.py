"""
Closed wire models for VNPay and MoMo.

Signatures are computed only over the fields declared here, so an unknown
extra key can never influence (or forge) a canonical string.
"""
from __future__ import annotations

from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict


class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


# ---- VNPay ----

class VNPayPaymentRequest(_Wire):
    vnp_Version: str
    vnp_Command: str
    vnp_TmnCode: str
    vnp_Amount: str
    vnp_CreateDate: str
    vnp_CurrCode: str
    vnp_IpAddr: str
    vnp_Locale: str
    vnp_OrderInfo: str
    vnp_OrderType: str
    vnp_ReturnUrl: str
    vnp_TxnRef: str
    vnp_ExpireDate: str
    vnp_BankCode: Optional[str] = None

    def signed_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class VNPayCallback(_Wire):
    vnp_TmnCode: Optional[str] = None
    vnp_Amount: str
    vnp_BankCode: Optional[str] = None
    vnp_BankTranNo: Optional[str] = None
    vnp_CardType: Optional[str] = None
    vnp_OrderInfo: Optional[str] = None
    vnp_PayDate: Optional[str] = None
    vnp_ResponseCode: str
    vnp_TransactionNo: Optional[str] = None
    vnp_TransactionStatus: Optional[str] = None
    vnp_TxnRef: str
    vnp_SecureHash: str
    vnp_SecureHashType: Optional[str] = None

    def signed_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"vnp_SecureHash", "vnp_SecureHashType"})


class VNPayRefundRequest(_Wire):
    vnp_RequestId: str
    vnp_Version: str
    vnp_Command: str = "refund"
    vnp_TmnCode: str
    vnp_TransactionType: str
    vnp_TxnRef: str
    vnp_Amount: str
    vnp_TransactionNo: str = ""
    vnp_TransactionDate: str
    vnp_CreateBy: str
    vnp_CreateDate: str
    vnp_IpAddr: str
    vnp_OrderInfo: str
    vnp_SecureHash: str = ""

    def hash_data(self) -> str:
        """Pipe-joined field order required by the merchant API."""
        return "|".join([
            self.vnp_RequestId, self.vnp_Version, self.vnp_Command, self.vnp_TmnCode,
            self.vnp_TransactionType, self.vnp_TxnRef, self.vnp_Amount, self.vnp_TransactionNo,
            self.vnp_TransactionDate, self.vnp_CreateBy, self.vnp_CreateDate, self.vnp_IpAddr,
            self.vnp_OrderInfo,
        ])


class VNPayRefundResponse(_Wire):
    vnp_ResponseId: Optional[str] = None
    vnp_Command: Optional[str] = None
    vnp_ResponseCode: Optional[str] = None
    vnp_Message: Optional[str] = None
    vnp_TmnCode: Optional[str] = None
    vnp_TxnRef: Optional[str] = None
    vnp_Amount: Optional[str] = None
    vnp_TransactionNo: Optional[str] = None
    vnp_TransactionType: Optional[str] = None
    vnp_TransactionStatus: Optional[str] = None


# ---- MoMo ----

class MoMoItem(_Wire):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    price: int
    currency: str = "VND"
    quantity: int
    totalPrice: int


class MoMoUserInfo(_Wire):
    name: Optional[str] = None
    phoneNumber: Optional[str] = None
    email: Optional[str] = None


class MoMoCreateRequest(_Wire):
    SIGNED: ClassVar[tuple[str, ...]] = (
        "amount", "extraData", "ipnUrl", "orderId", "orderInfo",
        "partnerCode", "redirectUrl", "requestId", "requestType",
    )

    partnerCode: str
    partnerName: str
    storeId: str
    requestId: str
    amount: int
    orderId: str
    orderInfo: str
    redirectUrl: str
    ipnUrl: str
    lang: str
    requestType: str
    autoCapture: bool = True
    extraData: str = ""
    items: Optional[list[MoMoItem]] = None
    userInfo: Optional[MoMoUserInfo] = None
    signature: str = ""

    def signed_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.SIGNED}


class MoMoCreateResponse(_Wire):
    partnerCode: Optional[str] = None
    requestId: Optional[str] = None
    orderId: Optional[str] = None
    amount: Optional[int] = None
    responseTime: Optional[int] = None
    message: Optional[str] = None
    resultCode: int
    payUrl: Optional[str] = None
    deeplink: Optional[str] = None
    qrCodeUrl: Optional[str] = None


class MoMoCallback(_Wire):
    SIGNED: ClassVar[tuple[str, ...]] = (
        "amount", "extraData", "message", "orderId", "orderInfo", "orderType",
        "partnerCode", "payType", "requestId", "responseTime", "resultCode", "transId",
    )

    partnerCode: str
    orderId: str
    requestId: str
    amount: int
    orderInfo: str = ""
    orderType: str = ""
    transId: Union[int, str]
    resultCode: int
    message: str = ""
    payType: str = ""
    responseTime: Union[int, str] = ""
    extraData: str = ""
    signature: str

    def signed_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.SIGNED}


class MoMoRefundRequest(_Wire):
    SIGNED: ClassVar[tuple[str, ...]] = ("amount", "description", "orderId", "partnerCode", "requestId", "transId")

    partnerCode: str
    orderId: str
    requestId: str
    amount: int
    transId: Union[int, str]
    lang: str = "vi"
    description: str = ""
    signature: str = ""

    def signed_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.SIGNED}


class MoMoRefundResponse(_Wire):
    orderId: Optional[str] = None
    requestId: Optional[str] = None
    amount: Optional[int] = None
    transId: Optional[Union[int, str]] = None
    resultCode: int
    message: Optional[str] = None
    responseTime: Optional[int] = None
