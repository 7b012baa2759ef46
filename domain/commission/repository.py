from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import CommissionTransaction


class CommissionRepository(ABC):

    @abstractmethod
    async def add(self, transaction: CommissionTransaction) -> CommissionTransaction:
        pass

    @abstractmethod
    async def list_by_order(self, order_id: str) -> List[CommissionTransaction]:
        pass

    @abstractmethod
    async def mark_refunded(self, transaction_id: str, refund_amount: int) -> Optional[CommissionTransaction]:
        """Set status=refunded and record the reversed amount."""
