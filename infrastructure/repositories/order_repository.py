"""
Order repository - SQLAlchemy implementation.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.order.entity import Order, OrderItem, OrderStatus, ShippingInfo, ensure_utc
from domain.order.pricing import DiscountCode
from domain.order.repository import DiscountCodeRepository, OrderRepository
from infrastructure.models.order import DiscountCodeModel, OrderModel
from infrastructure.repositories.errors import storage_errors

logger = get_logger(__name__)

UNIQUE_FIELDS = ("order_number", "payment_reference")


def _column_value(key: str, value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if key == "items":
        return [item.to_dict() if isinstance(item, OrderItem) else item for item in value]
    if key == "shipping_info" and isinstance(value, ShippingInfo):
        return value.to_dict()
    return value


def _columns(changes: dict[str, Any]) -> dict[str, Any]:
    return {
        ("extra_metadata" if key == "metadata" else key): _column_value(key, value)
        for key, value in changes.items()
    }


class SQLAlchemyOrderRepository(OrderRepository):
    """SQLAlchemy implementation of the order repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            order_number=model.order_number,
            user_id=model.user_id,
            items=[OrderItem.from_dict(item) for item in model.items or []],
            subtotal=model.subtotal,
            discount=model.discount,
            tax=model.tax,
            shipping_fee=model.shipping_fee,
            total=model.total,
            currency=model.currency,
            status=OrderStatus(model.status),
            payment_status=model.payment_status,
            payment_method=model.payment_method,
            payment_reference=model.payment_reference,
            transaction_id=model.transaction_id,
            shipping_info=ShippingInfo.from_dict(model.shipping_info) if model.shipping_info else None,
            discount_code=model.discount_code,
            notes=model.notes,
            refund_id=model.refund_id,
            refund_pending=bool(model.refund_pending),
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
            paid_at=model.paid_at,
            completed_at=model.completed_at,
            cancelled_at=model.cancelled_at,
            refunded_at=model.refunded_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        return OrderModel(
            id=entity.id,
            order_number=entity.order_number,
            user_id=entity.user_id,
            items=[item.to_dict() for item in entity.items],
            shipping_info=entity.shipping_info.to_dict() if entity.shipping_info else None,
            subtotal=entity.subtotal,
            discount=entity.discount,
            tax=entity.tax,
            shipping_fee=entity.shipping_fee,
            total=entity.total,
            currency=entity.currency,
            status=entity.status.value,
            payment_status=entity.payment_status.value,
            payment_method=entity.payment_method,
            payment_reference=entity.payment_reference,
            transaction_id=entity.transaction_id,
            discount_code=entity.discount_code,
            notes=entity.notes,
            refund_id=entity.refund_id,
            refund_pending=entity.refund_pending,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            paid_at=entity.paid_at,
            completed_at=entity.completed_at,
            cancelled_at=entity.cancelled_at,
            refunded_at=entity.refunded_at,
        )

    async def create(self, order: Order) -> Order:
        with storage_errors("order_create", UNIQUE_FIELDS, order_id=order.id):
            db_order = self._to_model(order)
            self.session.add(db_order)
            await self.session.flush()
        logger.info("order_created", order_id=order.id, order_number=order.order_number, total=order.total)
        return self._to_entity(db_order)

    async def _fetch(self, *criteria, refresh: bool = False) -> Optional[Order]:
        stmt = select(OrderModel).where(*criteria)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        with storage_errors("order_get"):
            result = await self.session.execute(stmt)
            db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        return await self._fetch(OrderModel.id == order_id)

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        return await self._fetch(OrderModel.order_number == order_number)

    async def exists_order_number(self, order_number: str) -> bool:
        with storage_errors("order_number_check"):
            result = await self.session.execute(
                select(func.count(OrderModel.id)).where(OrderModel.order_number == order_number)
            )
            return result.scalar_one() > 0

    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 20,
        status: Optional[OrderStatus] = None,
    ) -> Tuple[List[Order], int]:
        criteria = [OrderModel.user_id == user_id]
        if status:
            criteria.append(OrderModel.status == OrderStatus(status).value)

        with storage_errors("order_list", user_id=user_id):
            total = (await self.session.execute(select(func.count(OrderModel.id)).where(*criteria))).scalar_one()
            result = await self.session.execute(
                select(OrderModel)
                .where(*criteria)
                .order_by(OrderModel.created_at.desc())
                .offset(skip)
                .limit(limit)
            )
            rows = result.scalars().all()
        return [self._to_entity(row) for row in rows], total

    async def update(
        self,
        order_id: str,
        changes: dict[str, Any],
        expected_statuses: Optional[Iterable[OrderStatus]] = None,
        expected_refund_pending: Optional[bool] = None,
    ) -> Optional[Order]:
        stmt = update(OrderModel).where(OrderModel.id == order_id)
        if expected_statuses is not None:
            stmt = stmt.where(OrderModel.status.in_([OrderStatus(s).value for s in expected_statuses]))
        if expected_refund_pending is not None:
            stmt = stmt.where(OrderModel.refund_pending.is_(expected_refund_pending))
        stmt = stmt.values(**_columns(changes)).execution_options(synchronize_session=False)

        with storage_errors("order_update", UNIQUE_FIELDS, order_id=order_id):
            result = await self.session.execute(stmt)
        if result.rowcount == 0:
            logger.info("order_update_skipped", order_id=order_id, reason="status_moved_or_missing")
            return None

        updated = await self._fetch(OrderModel.id == order_id, refresh=True)
        logger.info("order_updated", order_id=order_id, fields=sorted(changes))
        return updated

    async def list_refunded(
        self,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Order]:
        stmt = select(OrderModel).where(OrderModel.status == OrderStatus.REFUNDED.value)
        if user_id:
            stmt = stmt.where(OrderModel.user_id == user_id)
        if start:
            stmt = stmt.where(OrderModel.refunded_at >= ensure_utc(start))
        if end:
            stmt = stmt.where(OrderModel.refunded_at < ensure_utc(end))
        with storage_errors("order_list_refunded"):
            result = await self.session.execute(stmt.order_by(OrderModel.refunded_at.desc()))
            rows = result.scalars().all()
        return [self._to_entity(row) for row in rows]

    async def count_paid_between(self, start: datetime, end: datetime) -> int:
        with storage_errors("order_count_paid"):
            result = await self.session.execute(
                select(func.count(OrderModel.id)).where(
                    OrderModel.paid_at >= ensure_utc(start),
                    OrderModel.paid_at < ensure_utc(end),
                )
            )
            return result.scalar_one()


class SQLAlchemyDiscountCodeRepository(DiscountCodeRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entity(model: DiscountCodeModel) -> DiscountCode:
        return DiscountCode(
            code=model.code,
            type=model.type,
            value=model.value,
            min_amount=model.min_amount,
            max_discount=model.max_discount,
            is_active=model.is_active,
            description=model.description,
        )

    async def get_by_code(self, code: str) -> Optional[DiscountCode]:
        with storage_errors("discount_code_get", code=code):
            result = await self.session.execute(
                select(DiscountCodeModel).where(DiscountCodeModel.code == code.upper())
            )
            model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def save(self, code: DiscountCode) -> DiscountCode:
        with storage_errors("discount_code_save", code=code.code):
            await self.session.merge(DiscountCodeModel(
                code=code.code,
                type=code.type.value,
                value=code.value,
                min_amount=code.min_amount,
                max_discount=code.max_discount,
                is_active=code.is_active,
                description=code.description,
            ))
            await self.session.flush()
        return code
