from __future__ import annotations

import gettext
from contextvars import ContextVar
from pathlib import Path

import structlog

DEFAULT_LOCALE = "vi"

_current_locale: ContextVar[str] = ContextVar("current_locale", default=DEFAULT_LOCALE)
_translators: dict[str, gettext.NullTranslations] = {}
_logger = structlog.get_logger(__name__)

# Built-in catalog used when no compiled gettext catalog provides the key.
_MESSAGES: dict[str, dict[str, str]] = {
    "vi": {
        "success": "Thành công",
        "validation.failed": "Dữ liệu không hợp lệ. Vui lòng kiểm tra lại.",
        "auth.unauthorized": "Bạn cần đăng nhập để thực hiện thao tác này.",
        "auth.forbidden": "Bạn không có quyền truy cập tài nguyên này.",
        "error.network": "Không thể kết nối đến máy chủ. Vui lòng kiểm tra kết nối mạng.",
        "error.storage": "Có lỗi xảy ra khi truy cập dữ liệu. Vui lòng thử lại sau.",
        "error.conflict": "Dữ liệu đã bị thay đổi. Vui lòng tải lại và thử lại.",
        "error.internal": "Có lỗi xảy ra. Vui lòng thử lại sau.",
        "order.not_found": "Không tìm thấy đơn hàng.",
        "order.state_conflict": "Không thể thực hiện thao tác với đơn hàng ở trạng thái {status}.",
        "order.created": "Tạo đơn hàng thành công",
        "order.cancelled": "Đã hủy đơn hàng",
        "order.updated": "Cập nhật đơn hàng thành công",
        "payment.failed": "Có lỗi trong quá trình thanh toán. Vui lòng kiểm tra thông tin thẻ và thử lại.",
        "payment.method_unsupported": "Phương thức thanh toán {method} không được hỗ trợ.",
        "payment.created": "Tạo yêu cầu thanh toán thành công",
        "refund.not_eligible": "Đơn hàng không đủ điều kiện hoàn tiền: {reason}",
        "refund.processed": "Hoàn tiền thành công",
        "refund.failed": "Hoàn tiền không thành công",
        "invoice.not_found": "Không tìm thấy hóa đơn.",
        "invoice.retrieved": "Lấy hóa đơn thành công",
        "order.list": "Danh sách đơn hàng",
        "order.retrieved": "Lấy thông tin đơn hàng thành công",
        "payment.status": "Trạng thái thanh toán",
        "payment.return_processed": "Đã xử lý kết quả thanh toán",
        "refund.history": "Lịch sử hoàn tiền",
        "refund.stats": "Thống kê hoàn tiền",
        "health.ok": "Hệ thống hoạt động bình thường",
        "welcome": "Chào mừng đến với hệ thống thanh toán",
    },
    "en": {
        "success": "Success",
        "validation.failed": "Invalid data. Please check and try again.",
        "auth.unauthorized": "Please sign in to continue.",
        "auth.forbidden": "You do not have access to this resource.",
        "error.network": "Unable to reach the server. Please check your connection.",
        "error.storage": "A data error occurred. Please try again later.",
        "error.conflict": "The data has changed. Please reload and try again.",
        "error.internal": "Something went wrong. Please try again later.",
        "order.not_found": "Order not found.",
        "order.state_conflict": "This action is not allowed for an order in status {status}.",
        "order.created": "Order created",
        "order.cancelled": "Order cancelled",
        "order.updated": "Order updated",
        "payment.failed": "Payment could not be completed. Please check your card and try again.",
        "payment.method_unsupported": "Payment method {method} is not supported.",
        "payment.created": "Payment request created",
        "refund.not_eligible": "Order is not eligible for a refund: {reason}",
        "refund.processed": "Refund processed",
        "refund.failed": "Refund failed",
        "invoice.not_found": "Invoice not found.",
        "invoice.retrieved": "Invoice retrieved",
        "order.list": "Orders",
        "order.retrieved": "Order retrieved",
        "payment.status": "Payment status",
        "payment.return_processed": "Payment result processed",
        "refund.history": "Refund history",
        "refund.stats": "Refund statistics",
        "health.ok": "Healthy",
        "welcome": "Welcome to the payment service",
    },
}


def set_locale(locale: str) -> None:
    """Set current request locale (fallback to the default locale)."""
    _current_locale.set(locale or DEFAULT_LOCALE)


def get_locale() -> str:
    """Get current request locale."""
    return _current_locale.get()


def _get_translator(locale: str) -> gettext.NullTranslations:
    tr = _translators.get(locale)
    if tr is not None:
        return tr
    localedir = Path(__file__).resolve().parent.parent / "locales"
    tr = gettext.translation(
        domain="messages",
        localedir=str(localedir),
        languages=[locale],
        fallback=True,
    )
    _translators[locale] = tr
    return tr


def _lookup(msgid: str, locale: str) -> str:
    text = _get_translator(locale).gettext(msgid)
    if text != msgid:
        return text
    table = _MESSAGES.get(locale) or _MESSAGES[DEFAULT_LOCALE]
    return table.get(msgid) or _MESSAGES[DEFAULT_LOCALE].get(msgid, msgid)


def t(msgid: str, **params) -> str:
    """Translate msgid using current locale and format with params.

    If no catalog knows the key, returns msgid itself.
    """
    text = _lookup(msgid, get_locale())
    if not params:
        return text
    try:
        return text.format(**params)
    except (KeyError, IndexError, ValueError) as exc:
        _logger.warning("i18n_format_failed", msgid=msgid, params=list(params.keys()), error=str(exc))
        return text
