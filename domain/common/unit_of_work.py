"""Abstract Unit of Work."""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.audit.repository import AuditLogRepository, NotificationRepository
from domain.commission.repository import CommissionRepository
from domain.invoice.repository import CustomerRepository, InvoiceRepository
from domain.order.repository import DiscountCodeRepository, OrderRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by application services."""

    order_repository: OrderRepository
    discount_code_repository: DiscountCodeRepository
    commission_repository: CommissionRepository
    invoice_repository: InvoiceRepository
    customer_repository: CustomerRepository
    audit_log_repository: AuditLogRepository
    notification_repository: NotificationRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # Commit only for writable units that were not committed explicitly.
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction."""

    @abstractmethod
    async def rollback(self) -> None:
        """Roll the transaction back."""
