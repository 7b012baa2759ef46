"""
API dependencies: caller identity, unit of work and application services.

Authentication happens upstream; the gateway in front of this service
forwards the authenticated user as ``X-User-Id`` and ``X-User-Role``.
"""
from typing import Mapping, Optional

from fastapi import Depends, Header, Request

from application.dto import CurrentUser
from application.ports.payment_gateway import PaymentGateway
from application.services.commission_service import CommissionService
from application.services.invoice_service import InvoiceService
from application.services.order_service import OrderService, UnitOfWorkFactory
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundService
from application.services.webhook_service import WebhookService
from core.exceptions import UnauthorizedException
from domain.common.exceptions import ForbiddenException
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

ADMIN_ROLE = "admin"


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> CurrentUser:
    """Identity forwarded by the authenticating proxy."""
    if not x_user_id:
        raise UnauthorizedException("Missing user identity")
    return CurrentUser(id=x_user_id, is_admin=(x_user_role or "").lower() == ADMIN_ROLE)


async def get_current_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise ForbiddenException("Administrator role required")
    return user


async def get_uow_factory() -> UnitOfWorkFactory:
    return SQLAlchemyUnitOfWork


async def get_payment_gateways(request: Request) -> Mapping[str, PaymentGateway]:
    # Built once in the application lifespan
    return request.app.state.payment_gateways


async def get_commission_service(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> CommissionService:
    return CommissionService(uow_factory)


async def get_invoice_service(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> InvoiceService:
    return InvoiceService(uow_factory)


async def get_order_service(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> OrderService:
    return OrderService(uow_factory)


async def get_payment_service(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    gateways: Mapping[str, PaymentGateway] = Depends(get_payment_gateways),
) -> PaymentService:
    return PaymentService(uow_factory, gateways)


async def get_webhook_service(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    gateways: Mapping[str, PaymentGateway] = Depends(get_payment_gateways),
    commissions: CommissionService = Depends(get_commission_service),
    invoices: InvoiceService = Depends(get_invoice_service),
) -> WebhookService:
    return WebhookService(uow_factory, gateways, commission_service=commissions, invoice_service=invoices)


async def get_refund_service(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    gateways: Mapping[str, PaymentGateway] = Depends(get_payment_gateways),
    commissions: CommissionService = Depends(get_commission_service),
) -> RefundService:
    return RefundService(uow_factory, gateways, commission_service=commissions)
