"""
Order application service: orchestrates unit of work, domain service and DTO mapping.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, List, Optional, Tuple

from application.dto import CurrentUser, PaginationParams
from application.dtos.orders import (
    FULFILMENT_STATUSES,
    CreateOrderDTO,
    OrderResponseDTO,
    PaymentStatusDTO,
    UpdateOrderStatusDTO,
)
from application.services.activity import record_order_events
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    DuplicateRecordException,
    ForbiddenException,
    wrap_exception,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus
from domain.order.pricing import CityTableShippingPolicy, ShippingFeePolicy
from domain.order.service import OrderDomainService

logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


def default_shipping_policy() -> ShippingFeePolicy:
    return CityTableShippingPolicy(settings.shipping.city_fees, settings.shipping.default_fee)


def build_order_domain_service(
    uow: AbstractUnitOfWork, shipping_policy: Optional[ShippingFeePolicy] = None
) -> OrderDomainService:
    return OrderDomainService(
        uow.order_repository,
        uow.discount_code_repository,
        shipping_policy or default_shipping_policy(),
        tax_rate=Decimal(str(settings.pricing.tax_rate)),
        order_number_prefix=settings.pricing.order_number_prefix,
        currency=settings.pricing.currency,
    )


def ensure_owner(user: Optional[CurrentUser], order: Order) -> None:
    """Admins see everything; customers only their own orders."""
    if user is None or user.is_admin or order.user_id == user.id:
        return
    raise ForbiddenException("Order belongs to another user", details={"order_id": order.id})


class OrderService:
    """Order use-cases."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        shipping_policy: Optional[ShippingFeePolicy] = None,
    ):
        self._uow_factory = uow_factory
        self._shipping_policy = shipping_policy

    def _domain(self, uow: AbstractUnitOfWork) -> OrderDomainService:
        return build_order_domain_service(uow, self._shipping_policy)

    async def create_order(self, user: CurrentUser, data: CreateOrderDTO) -> OrderResponseDTO:
        attempts = settings.pricing.order_number_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                async with self._uow_factory() as uow:
                    domain = self._domain(uow)
                    order = await domain.create_order(
                        user_id=user.id,
                        items=[item.to_entity() for item in data.items],
                        shipping_info=data.shipping_info.to_entity() if data.shipping_info else None,
                        discount_code=data.discount_code,
                        notes=data.notes,
                        metadata=data.metadata,
                    )
                    await record_order_events(uow, domain.events)
                logger.info("order_create_success", order_id=order.id, user_id=user.id, total=order.total)
                return OrderResponseDTO.from_entity(order)
            except DuplicateRecordException as exc:
                if exc.field != "order_number" or attempt == attempts:
                    raise
                logger.warning("order_number_collision", attempt=attempt, user_id=user.id)
            except BusinessException:
                raise
            except Exception as exc:
                raise wrap_exception(exc, operation="create_order", user_id=user.id) from exc

    async def get_order(self, user: Optional[CurrentUser], order_id: str) -> OrderResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await self._domain(uow).get_order(order_id)
        ensure_owner(user, order)
        return OrderResponseDTO.from_entity(order)

    async def list_orders(
        self,
        user: CurrentUser,
        params: PaginationParams,
        status: Optional[OrderStatus] = None,
    ) -> Tuple[List[OrderResponseDTO], int]:
        async with self._uow_factory(readonly=True) as uow:
            orders, total = await uow.order_repository.list_by_user(
                user.id, skip=params.skip, limit=params.limit, status=status
            )
        return [OrderResponseDTO.from_entity(o) for o in orders], total

    async def cancel_order(self, user: CurrentUser, order_id: str, reason: Optional[str] = None) -> OrderResponseDTO:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            ensure_owner(user, await domain.get_order(order_id))
            order = await domain.cancel_order(order_id, reason)
            await record_order_events(uow, domain.events)
        logger.info("order_cancelled", order_id=order_id, user_id=user.id)
        return OrderResponseDTO.from_entity(order)

    async def update_status(self, user: CurrentUser, order_id: str, data: UpdateOrderStatusDTO) -> OrderResponseDTO:
        """Fulfilment step for physical goods; admin only."""
        if not user.is_admin:
            raise ForbiddenException("Only administrators can change fulfilment status")
        target = FULFILMENT_STATUSES[data.status]
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            current = await domain.get_order(order_id)
            changes: dict[str, Any] = {"status": target}
            if target == OrderStatus.COMPLETED:
                changes["completed_at"] = datetime.now(timezone.utc)
            if data.note:
                changes["notes"] = current.append_note(data.note)
            order = await domain.update_order(order_id, changes, expected_statuses={current.status})
        logger.info("order_status_updated", order_id=order_id, status=order.status.value, by=user.id)
        return OrderResponseDTO.from_entity(order)

    async def get_payment_status(self, user: Optional[CurrentUser], order_id: str) -> PaymentStatusDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await self._domain(uow).get_order(order_id)
        ensure_owner(user, order)
        return PaymentStatusDTO.from_entity(order)
