"""
Order repository interfaces - what the domain needs from the store, not how it is done.
"""
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Tuple

from .entity import Order, OrderStatus
from .pricing import DiscountCode


class OrderRepository(ABC):

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """Persist a new order; raises DuplicateRecordException on a taken order number."""

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def exists_order_number(self, order_number: str) -> bool:
        pass

    @abstractmethod
    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 20,
        status: Optional[OrderStatus] = None,
    ) -> Tuple[List[Order], int]:
        """Newest first, with the total count for pagination."""

    @abstractmethod
    async def update(
        self,
        order_id: str,
        changes: dict[str, Any],
        expected_statuses: Optional[Iterable[OrderStatus]] = None,
        expected_refund_pending: Optional[bool] = None,
    ) -> Optional[Order]:
        """
        Conditional update.

        Applies ``changes`` only while the stored status is one of
        ``expected_statuses`` and the refund flag equals
        ``expected_refund_pending`` (each when given). Returns the updated order, or None
        when no row matched because the order is missing or its status moved.
        """

    @abstractmethod
    async def list_refunded(self, user_id: Optional[str] = None, start=None, end=None) -> List[Order]:
        """Refunded orders, optionally by user and refunded_at window."""

    @abstractmethod
    async def count_paid_between(self, start, end) -> int:
        """Orders paid in the window (used for refund rate)."""


class DiscountCodeRepository(ABC):

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[DiscountCode]:
        """Lookup by upper-cased code; inactive codes are returned too."""

    @abstractmethod
    async def save(self, code: DiscountCode) -> DiscountCode:
        pass
