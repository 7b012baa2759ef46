"""SQLAlchemy Unit of Work implementation."""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.audit_repository import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyNotificationRepository,
)
from infrastructure.repositories.commission_repository import SQLAlchemyCommissionRepository
from infrastructure.repositories.invoice_repository import (
    SQLAlchemyCustomerRepository,
    SQLAlchemyInvoiceRepository,
)
from infrastructure.repositories.order_repository import (
    SQLAlchemyDiscountCodeRepository,
    SQLAlchemyOrderRepository,
)

_REPOSITORIES = (
    "order_repository",
    "discount_code_repository",
    "commission_repository",
    "invoice_repository",
    "customer_repository",
    "audit_log_repository",
    "notification_repository",
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """One session and one transaction shared by every repository."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session
        self._clear_repositories()

    def _clear_repositories(self) -> None:
        for name in _REPOSITORIES:
            setattr(self, name, None)

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.order_repository = SQLAlchemyOrderRepository(self.session)
        self.discount_code_repository = SQLAlchemyDiscountCodeRepository(self.session)
        self.commission_repository = SQLAlchemyCommissionRepository(self.session)
        self.invoice_repository = SQLAlchemyInvoiceRepository(self.session)
        self.customer_repository = SQLAlchemyCustomerRepository(self.session)
        self.audit_log_repository = SQLAlchemyAuditLogRepository(self.session)
        self.notification_repository = SQLAlchemyNotificationRepository(self.session)
        # Only writable units open an explicit transaction
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self._clear_repositories()

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
