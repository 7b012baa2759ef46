"""
Audit log and notification repositories - SQLAlchemy implementation.

Audit tables are append-only: nothing here updates or deletes a row.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.audit.entity import ActivityLog, Notification, WebhookChannel, WebhookLog, WebhookOutcome
from domain.audit.repository import AuditLogRepository, NotificationRepository
from infrastructure.models.audit import ActivityLogModel, NotificationModel, WebhookLogModel
from infrastructure.repositories.errors import storage_errors


class SQLAlchemyAuditLogRepository(AuditLogRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_webhook_log(self, entry: WebhookLog) -> WebhookLog:
        model = WebhookLogModel(
            gateway=entry.gateway,
            order_id=entry.order_id,
            channel=entry.channel.value,
            outcome=entry.outcome.value,
            payload=entry.payload,
            message=entry.message,
            processed_at=entry.processed_at,
        )
        with storage_errors("webhook_log_add", order_id=entry.order_id):
            self.session.add(model)
            await self.session.flush()
        entry.id = model.id
        return entry

    async def list_webhook_logs(
        self, order_id: str, gateway: Optional[str] = None, outcome: Optional[WebhookOutcome] = None
    ) -> List[WebhookLog]:
        stmt = select(WebhookLogModel).where(WebhookLogModel.order_id == order_id)
        if gateway:
            stmt = stmt.where(WebhookLogModel.gateway == gateway)
        if outcome:
            stmt = stmt.where(WebhookLogModel.outcome == WebhookOutcome(outcome).value)
        with storage_errors("webhook_log_list", order_id=order_id):
            result = await self.session.execute(stmt.order_by(WebhookLogModel.id))
            rows = result.scalars().all()
        return [
            WebhookLog(
                id=row.id,
                gateway=row.gateway,
                order_id=row.order_id,
                channel=WebhookChannel(row.channel),
                outcome=WebhookOutcome(row.outcome),
                payload=row.payload or {},
                message=row.message,
                processed_at=row.processed_at,
            )
            for row in rows
        ]

    async def add_activity(self, entry: ActivityLog) -> ActivityLog:
        model = ActivityLogModel(
            order_id=entry.order_id,
            user_id=entry.user_id,
            activity_type=entry.activity_type,
            description=entry.description,
            extra_metadata=entry.metadata,
            created_at=entry.created_at,
        )
        with storage_errors("activity_log_add", order_id=entry.order_id):
            self.session.add(model)
            await self.session.flush()
        entry.id = model.id
        return entry

    async def list_activities(self, order_id: str, activity_type: Optional[str] = None) -> List[ActivityLog]:
        stmt = select(ActivityLogModel).where(ActivityLogModel.order_id == order_id)
        if activity_type:
            stmt = stmt.where(ActivityLogModel.activity_type == activity_type)
        with storage_errors("activity_log_list", order_id=order_id):
            result = await self.session.execute(stmt.order_by(ActivityLogModel.id))
            rows = result.scalars().all()
        return [
            ActivityLog(
                id=row.id,
                order_id=row.order_id,
                user_id=row.user_id,
                activity_type=row.activity_type,
                description=row.description,
                metadata=row.extra_metadata or {},
                created_at=row.created_at,
            )
            for row in rows
        ]


class SQLAlchemyNotificationRepository(NotificationRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, notification: Notification) -> Notification:
        model = NotificationModel(
            user_id=notification.user_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            priority=notification.priority,
            is_read=notification.is_read,
            extra_metadata=notification.metadata,
            created_at=notification.created_at,
        )
        with storage_errors("notification_add", user_id=notification.user_id):
            self.session.add(model)
            await self.session.flush()
        notification.id = model.id
        return notification

    async def list_by_user(self, user_id: str, notification_type: Optional[str] = None) -> List[Notification]:
        stmt = select(NotificationModel).where(NotificationModel.user_id == user_id)
        if notification_type:
            stmt = stmt.where(NotificationModel.type == notification_type)
        with storage_errors("notification_list", user_id=user_id):
            result = await self.session.execute(stmt.order_by(NotificationModel.id.desc()))
            rows = result.scalars().all()
        return [
            Notification(
                id=row.id,
                user_id=row.user_id,
                type=row.type,
                title=row.title,
                message=row.message,
                priority=row.priority,
                is_read=row.is_read,
                metadata=row.extra_metadata or {},
                created_at=row.created_at,
            )
            for row in rows
        ]
