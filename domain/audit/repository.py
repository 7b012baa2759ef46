from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import ActivityLog, Notification, WebhookLog, WebhookOutcome


class AuditLogRepository(ABC):
    """Append-only: entries are never updated or deleted."""

    @abstractmethod
    async def add_webhook_log(self, entry: WebhookLog) -> WebhookLog:
        pass

    @abstractmethod
    async def list_webhook_logs(
        self, order_id: str, gateway: Optional[str] = None, outcome: Optional[WebhookOutcome] = None
    ) -> List[WebhookLog]:
        pass

    @abstractmethod
    async def add_activity(self, entry: ActivityLog) -> ActivityLog:
        pass

    @abstractmethod
    async def list_activities(self, order_id: str, activity_type: Optional[str] = None) -> List[ActivityLog]:
        pass


class NotificationRepository(ABC):

    @abstractmethod
    async def add(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str, notification_type: Optional[str] = None) -> List[Notification]:
        pass
