"""
Payment specific codes and gateway result-code message tables.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    TIMEOUT = 60003


VNPAY_SUCCESS_CODE = "00"
MOMO_SUCCESS_CODE = 0

VNPAY_RESPONSE_MESSAGES: dict[str, str] = {
    "00": "Giao dịch thành công",
    "07": "Trừ tiền thành công. Giao dịch bị nghi ngờ (liên quan tới lừa đảo, giao dịch bất thường).",
    "09": "Thẻ/Tài khoản của khách hàng chưa đăng ký dịch vụ InternetBanking tại ngân hàng.",
    "10": "Khách hàng xác thực thông tin thẻ/tài khoản không đúng quá 3 lần",
    "11": "Đã hết hạn chờ thanh toán. Xin quý khách vui lòng thực hiện lại giao dịch.",
    "12": "Thẻ/Tài khoản của khách hàng bị khóa.",
    "13": "Quý khách nhập sai mật khẩu xác thực giao dịch (OTP). Xin quý khách vui lòng thực hiện lại giao dịch.",
    "24": "Khách hàng hủy giao dịch",
    "51": "Tài khoản của quý khách không đủ số dư để thực hiện giao dịch.",
    "65": "Tài khoản của Quý khách đã vượt quá hạn mức giao dịch trong ngày.",
    "75": "Ngân hàng thanh toán đang bảo trì.",
    "79": "KH nhập sai mật khẩu thanh toán quá số lần quy định. Xin quý khách vui lòng thực hiện lại giao dịch",
    "99": "Các lỗi khác (lỗi còn lại, không có trong danh sách mã lỗi đã liệt kê)",
}

MOMO_RESULT_MESSAGES: dict[int, str] = {
    0: "Thành công",
    9000: "Giao dịch đã được xác nhận thành công",
    8000: "Giao dịch đang ở trạng thái cần được người dùng xác nhận thanh toán lại",
    7000: "Giao dịch đang được xử lý",
    1000: "Giao dịch đã được khởi tạo, chờ người dùng xác nhận thanh toán",
    11: "Truy cập bị từ chối",
    12: "Phiên bản API không được hỗ trợ cho yêu cầu này",
    13: "Xác thực doanh nghiệp thất bại",
    20: "Yêu cầu sai định dạng",
    21: "Số tiền giao dịch không hợp lệ",
    40: "RequestId bị trùng",
    41: "OrderId bị trùng",
    42: "OrderId không hợp lệ hoặc không được tìm thấy",
    43: "Yêu cầu bị từ chối vì xung đột trong quá trình xử lý giao dịch",
    1001: "Giao dịch thanh toán thất bại do tài khoản người dùng không đủ tiền",
    1002: "Giao dịch bị từ chối do nhà phát hành tài khoản thanh toán",
    1003: "Giao dịch bị đã bị hủy",
    1004: "Giao dịch thất bại do số tiền thanh toán vượt quá hạn mức thanh toán của người dùng",
    1005: "Giao dịch thất bại do url hoặc QR code đã hết hạn",
    1006: "Giao dịch thất bại do người dùng đã từ chối xác nhận thanh toán",
    2001: "Giao dịch thất bại do sai thông tin liên kết",
    2007: "Giao dịch thất bại do liên kết hiện đang bị tạm khóa",
    4001: "Giao dịch bị hạn chế do người dùng chưa hoàn tất xác thực tài khoản",
    4100: "Giao dịch thất bại do người dùng không đăng nhập thành công",
}


def vnpay_message(code: str | None) -> str:
    """Human readable text for a VNPay response code; unknown codes keep the raw value."""
    if code in VNPAY_RESPONSE_MESSAGES:
        return VNPAY_RESPONSE_MESSAGES[code]
    return f"Lỗi không xác định (mã {code})"


def momo_message(code: int | None) -> str:
    """Human readable text for a MoMo result code; unknown codes keep the raw value."""
    if code in MOMO_RESULT_MESSAGES:
        return MOMO_RESULT_MESSAGES[code]
    return f"Lỗi không xác định ({code})"
