"""
Commission recording and reversal for partner-supplied order items.
"""
from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal
from typing import List, Sequence

from application.services.order_service import UnitOfWorkFactory
from core.logging_config import get_logger
from domain.commission.entity import (
    DEFAULT_COMMISSION_RATES,
    CommissionRate,
    CommissionSplit,
    CommissionStatus,
    CommissionTransaction,
    calculate_commission,
)
from domain.order.entity import Order
from domain.order.pricing import round_half_up

logger = get_logger(__name__)


def split_order(order: Order, rates: Sequence[CommissionRate] = DEFAULT_COMMISSION_RATES) -> List[CommissionSplit]:
    """One split per (partner, category) over the gross line totals of partner items."""
    groups: "OrderedDict[tuple[str, str], int]" = OrderedDict()
    for item in order.items:
        if not item.partner_id:
            continue
        key = (item.partner_id, item.category or item.type.value)
        groups[key] = groups.get(key, 0) + item.line_total
    return [
        calculate_commission(amount, partner_id, category, rates)
        for (partner_id, category), amount in groups.items()
    ]


class CommissionService:

    def __init__(self, uow_factory: UnitOfWorkFactory, rates: Sequence[CommissionRate] = DEFAULT_COMMISSION_RATES):
        self._uow_factory = uow_factory
        self._rates = rates

    async def record_for_order(self, order: Order) -> List[CommissionTransaction]:
        """Create pending commission rows; a second call for the same order returns the existing rows."""
        async with self._uow_factory() as uow:
            existing = await uow.commission_repository.list_by_order(order.id)
            if existing:
                return existing
            recorded = []
            for split in split_order(order, self._rates):
                recorded.append(await uow.commission_repository.add(CommissionTransaction.from_split(order.id, split)))
        if recorded:
            logger.info("commission_recorded_for_order", order_id=order.id, transactions=len(recorded))
        return recorded

    async def reverse_for_order(self, order: Order, refund_amount: int) -> List[CommissionTransaction]:
        """Mark the order's commissions refunded, sharing the refund in proportion to each gross amount."""
        async with self._uow_factory() as uow:
            transactions = [
                txn for txn in await uow.commission_repository.list_by_order(order.id)
                if txn.status != CommissionStatus.REFUNDED
            ]
            reversed_ = []
            for txn in transactions:
                share = round_half_up(Decimal(refund_amount) * Decimal(txn.gross_amount) / Decimal(order.total or 1))
                updated = await uow.commission_repository.mark_refunded(txn.id, min(share, txn.gross_amount))
                if updated is not None:
                    reversed_.append(updated)
        logger.info("commission_reversed", order_id=order.id, transactions=len(reversed_))
        return reversed_
