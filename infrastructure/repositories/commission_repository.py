"""
Commission ledger repository - SQLAlchemy implementation.
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.commission.entity import CommissionStatus, CommissionTransaction
from domain.commission.repository import CommissionRepository
from infrastructure.models.commission import CommissionTransactionModel
from infrastructure.repositories.errors import storage_errors

logger = get_logger(__name__)


class SQLAlchemyCommissionRepository(CommissionRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entity(model: CommissionTransactionModel) -> CommissionTransaction:
        return CommissionTransaction(
            id=model.id,
            order_id=model.order_id,
            partner_id=model.partner_id,
            platform_id=model.platform_id,
            category=model.category,
            gross_amount=model.gross_amount,
            platform_rate=model.platform_rate,
            platform_commission=model.platform_commission,
            partner_commission=model.partner_commission,
            net_amount=model.net_amount,
            refund_amount=model.refund_amount,
            status=model.status,
            created_at=model.created_at,
            refunded_at=model.refunded_at,
        )

    async def add(self, transaction: CommissionTransaction) -> CommissionTransaction:
        with storage_errors("commission_add", order_id=transaction.order_id):
            self.session.add(CommissionTransactionModel(
                id=transaction.id,
                order_id=transaction.order_id,
                partner_id=transaction.partner_id,
                platform_id=transaction.platform_id,
                category=transaction.category,
                gross_amount=transaction.gross_amount,
                platform_rate=transaction.platform_rate,
                platform_commission=transaction.platform_commission,
                partner_commission=transaction.partner_commission,
                net_amount=transaction.net_amount,
                refund_amount=transaction.refund_amount,
                status=transaction.status.value,
                created_at=transaction.created_at,
                refunded_at=transaction.refunded_at,
            ))
            await self.session.flush()
        logger.info(
            "commission_recorded",
            order_id=transaction.order_id,
            partner_id=transaction.partner_id,
            platform_commission=transaction.platform_commission,
        )
        return transaction

    async def list_by_order(self, order_id: str) -> List[CommissionTransaction]:
        with storage_errors("commission_list", order_id=order_id):
            result = await self.session.execute(
                select(CommissionTransactionModel)
                .where(CommissionTransactionModel.order_id == order_id)
                .order_by(CommissionTransactionModel.created_at)
            )
            rows = result.scalars().all()
        return [self._to_entity(row) for row in rows]

    async def mark_refunded(self, transaction_id: str, refund_amount: int) -> Optional[CommissionTransaction]:
        with storage_errors("commission_refund", transaction_id=transaction_id):
            model = await self.session.get(CommissionTransactionModel, transaction_id)
            if model is None:
                return None
            model.status = CommissionStatus.REFUNDED.value
            model.refund_amount = refund_amount
            model.refunded_at = datetime.now(timezone.utc)
            await self.session.flush()
        return self._to_entity(model)
