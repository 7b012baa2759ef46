"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import DiscountCodeModel, OrderModel
from .commission import CommissionTransactionModel
from .invoice import InvoiceModel
from .audit import ActivityLogModel, NotificationModel, WebhookLogModel
from .customer import UserProfileModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "DiscountCodeModel",
    "CommissionTransactionModel",
    "InvoiceModel",
    "WebhookLogModel",
    "ActivityLogModel",
    "NotificationModel",
    "UserProfileModel",
]
