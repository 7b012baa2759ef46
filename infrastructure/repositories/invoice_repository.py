"""
Invoice and customer-profile repositories - SQLAlchemy implementation.
"""
from dataclasses import asdict
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.invoice.entity import CompanyInfo, CustomerInfo, Invoice, InvoiceItem
from domain.invoice.repository import CustomerRepository, InvoiceRepository
from infrastructure.models.customer import UserProfileModel
from infrastructure.models.invoice import InvoiceModel
from infrastructure.repositories.errors import storage_errors


class SQLAlchemyInvoiceRepository(InvoiceRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entity(model: InvoiceModel) -> Invoice:
        return Invoice(
            id=model.id,
            invoice_number=model.invoice_number,
            order_id=model.order_id,
            order_number=model.order_number,
            user_id=model.user_id,
            company=CompanyInfo(**model.company),
            customer=CustomerInfo(**model.customer),
            items=[InvoiceItem(**item) for item in model.items],
            subtotal=model.subtotal,
            item_discount_total=model.item_discount_total,
            discount=model.discount,
            shipping_fee=model.shipping_fee,
            tax=model.tax,
            total=model.total,
            currency=model.currency,
            status=model.status,
            issued_at=model.issued_at,
            due_date=model.due_date,
            paid_at=model.paid_at,
            notes=model.notes,
        )

    async def add(self, invoice: Invoice) -> Invoice:
        with storage_errors("invoice_add", ("order_id", "invoice_number"), order_id=invoice.order_id):
            self.session.add(InvoiceModel(
                id=invoice.id,
                invoice_number=invoice.invoice_number,
                order_id=invoice.order_id,
                order_number=invoice.order_number,
                user_id=invoice.user_id,
                company=asdict(invoice.company),
                customer=asdict(invoice.customer),
                items=[asdict(item) for item in invoice.items],
                subtotal=invoice.subtotal,
                item_discount_total=invoice.item_discount_total,
                discount=invoice.discount,
                shipping_fee=invoice.shipping_fee,
                tax=invoice.tax,
                total=invoice.total,
                currency=invoice.currency,
                status=invoice.status.value,
                issued_at=invoice.issued_at,
                due_date=invoice.due_date,
                paid_at=invoice.paid_at,
                notes=invoice.notes,
            ))
            await self.session.flush()
        return invoice

    async def get_by_order(self, order_id: str) -> Optional[Invoice]:
        with storage_errors("invoice_get", order_id=order_id):
            result = await self.session.execute(select(InvoiceModel).where(InvoiceModel.order_id == order_id))
            model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None


class SQLAlchemyCustomerRepository(CustomerRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_customer_info(self, user_id: str) -> Optional[CustomerInfo]:
        with storage_errors("customer_get", user_id=user_id):
            model = await self.session.get(UserProfileModel, user_id)
        if model is None:
            return None
        return CustomerInfo(name=model.full_name, email=model.email, phone=model.phone, address=model.address)
