from abc import ABC, abstractmethod
from typing import Optional

from .entity import CustomerInfo, Invoice


class InvoiceRepository(ABC):

    @abstractmethod
    async def add(self, invoice: Invoice) -> Invoice:
        """Raises DuplicateRecordException when the order already has an invoice."""

    @abstractmethod
    async def get_by_order(self, order_id: str) -> Optional[Invoice]:
        pass


class CustomerRepository(ABC):
    """Read-only view over user profiles."""

    @abstractmethod
    async def get_customer_info(self, user_id: str) -> Optional[CustomerInfo]:
        pass
