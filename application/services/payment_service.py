"""
Application service orchestrating payment initiation.

Depends only on the application PaymentGateway port and DTOs. Gateway
implementations are built by infrastructure and injected from the
composition root, keeping dependencies one-way.
"""
from __future__ import annotations

from typing import Mapping, Optional

from application.dto import CurrentUser
from application.dtos.payments import SUPPORTED_PAYMENT_METHODS, CreatePayment, PaymentRedirect
from application.ports.payment_gateway import PaymentGateway
from application.services.order_service import UnitOfWorkFactory, ensure_owner
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    DuplicateRecordException,
    OrderStateConflictException,
    PaymentMethodNotSupportedException,
    wrap_exception,
)
from domain.order.entity import OrderStatus
from domain.order.service import OrderDomainService

logger = get_logger(__name__)


class PaymentService:
    # A reference collision is retried with a fresh timestamp-based reference
    MAX_ATTEMPTS = 3

    def __init__(self, uow_factory: UnitOfWorkFactory, gateways: Mapping[str, PaymentGateway]) -> None:
        self._uow_factory = uow_factory
        self._gateways = gateways

    def gateway_for(self, method: Optional[str]) -> PaymentGateway:
        name = (method or "").lower()
        gateway = self._gateways.get(name)
        if name not in SUPPORTED_PAYMENT_METHODS or gateway is None:
            raise PaymentMethodNotSupportedException(method)
        return gateway

    async def create_payment(self, req: CreatePayment, user: Optional[CurrentUser] = None) -> PaymentRedirect:
        gateway = self.gateway_for(req.payment_method)
        logger.info("payment_create_request", order_id=req.order_id, provider=gateway.provider)
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                redirect = await self._attempt(req, gateway, user)
            except DuplicateRecordException as exc:
                if exc.field != "payment_reference" or attempt == self.MAX_ATTEMPTS:
                    raise
                logger.warning("payment_reference_collision", order_id=req.order_id, attempt=attempt)
                continue
            except BusinessException:
                raise
            except Exception as exc:
                raise wrap_exception(exc, operation="create_payment", order_id=req.order_id) from exc
            logger.info(
                "payment_create_response",
                order_id=req.order_id,
                provider=gateway.provider,
                gateway_reference=redirect.gateway_reference,
            )
            return redirect

    async def _attempt(
        self, req: CreatePayment, gateway: PaymentGateway, user: Optional[CurrentUser]
    ) -> PaymentRedirect:
        async with self._uow_factory(readonly=True) as uow:
            order = await OrderDomainService(uow.order_repository).get_order(req.order_id)
        ensure_owner(user, order)
        if order.status != OrderStatus.PENDING:
            raise OrderStateConflictException(order.id, order.status.value, "Order is not awaiting payment")

        # The gateway call happens outside any transaction; the write below is a CAS from pending.
        redirect = await gateway.create_payment_request(order, req.customer_info)

        async with self._uow_factory() as uow:
            await OrderDomainService(uow.order_repository).mark_processing(
                order, gateway.provider, redirect.gateway_reference
            )
        return redirect
