"""
Invoice issuing and retrieval.
"""
from __future__ import annotations

from typing import Optional

from application.dto import CurrentUser
from application.dtos.orders import InvoiceDTO
from application.services.order_service import UnitOfWorkFactory, ensure_owner
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import DuplicateRecordException, InvoiceNotFoundException, OrderNotFoundException
from domain.invoice.entity import CompanyInfo, Invoice, create_invoice_from_order

logger = get_logger(__name__)


def default_company() -> CompanyInfo:
    return CompanyInfo(**settings.invoice.company.model_dump())


class InvoiceService:

    def __init__(self, uow_factory: UnitOfWorkFactory, company: Optional[CompanyInfo] = None):
        self._uow_factory = uow_factory
        self._company = company or default_company()

    async def generate_for_order(self, order_id: str) -> Optional[Invoice]:
        """
        Issue the invoice for an order.

        Idempotent: an order that already has an invoice gets it back. Returns
        None when the customer has no profile to print on the invoice. A clash on
        the random invoice number is retried with a fresh one.
        """
        attempts = settings.invoice.number_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                async with self._uow_factory() as uow:
                    existing = await uow.invoice_repository.get_by_order(order_id)
                    if existing is not None:
                        return existing
                    order = await uow.order_repository.get_by_id(order_id)
                    if order is None:
                        raise OrderNotFoundException(order_id)
                    customer = await uow.customer_repository.get_customer_info(order.user_id)
                    if customer is None:
                        logger.warning("invoice_skipped_missing_customer", order_id=order_id, user_id=order.user_id)
                        return None
                    invoice = create_invoice_from_order(
                        order,
                        customer,
                        self._company,
                        tax_rate=settings.invoice.tax_rate,
                        due_days=settings.invoice.due_days,
                    )
                    await uow.invoice_repository.add(invoice)
            except DuplicateRecordException as exc:
                if exc.field == "order_id":
                    # Issued concurrently by another request
                    async with self._uow_factory(readonly=True) as uow:
                        return await uow.invoice_repository.get_by_order(order_id)
                if exc.field != "invoice_number" or attempt == attempts:
                    raise
                logger.warning("invoice_number_collision", attempt=attempt, order_id=order_id)
                continue
            logger.info("invoice_generated", order_id=order_id, invoice_number=invoice.invoice_number)
            return invoice

    async def get_invoice(self, user: Optional[CurrentUser], order_id: str) -> InvoiceDTO:
        """Existing invoice, issued on demand for paid orders."""
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            ensure_owner(user, order)
            invoice = await uow.invoice_repository.get_by_order(order_id)
        if invoice is None and order.is_paid:
            invoice = await self.generate_for_order(order_id)
        if invoice is None:
            raise InvoiceNotFoundException(order_id)
        return InvoiceDTO.from_entity(invoice)
