"""Accrue the company percentage on project payments into the distribution pools."""

import logging
from decimal import Decimal

from src.models.distribution import FundType
from src.models.project import PercentageLog, PercentagePool
from src.services.audit_service import AuditService
from src.services.distribution_calculator import HUNDRED, round_money
from src.services.errors import InvalidShare, PoolMissing
from src.services.ledger_runner import ProjectLockRegistry, project_locks
from src.services.ledger_store import LedgerStore
from src.services.results import Actor

logger = logging.getLogger(__name__)


class PercentageAccrualService:
    """Turns a payment into a percentage log and grows the matching pool."""

    def __init__(self, store: LedgerStore, locks: ProjectLockRegistry | None = None):
        """Initialize with ledger store and lock registry (process-wide by default)."""
        self.store = store
        self.locks = locks or project_locks

    async def record_payment_fee(
        self,
        project_id: int,
        amount: Decimal,
        payment_method: str,
        actor: Actor,
        currency: str = "LYD",
        expense_id: int | None = None,
        payment_id: int | None = None,
    ) -> PercentageLog:
        """Charge the pool's fee rate on a payment.

        A log row is written first, then the fee is added to the pool's period
        and lifetime balances. Runs under the project lock, so a distribution
        reducing the same pool never overwrites the fee.

        Raises:
            InvalidShare: Amount is not positive or method is unknown
            PoolMissing: Project has no pool for this currency and method
        """
        amount = round_money(amount)
        if amount <= 0:
            raise InvalidShare("Payment amount must be positive")
        if payment_method not in (FundType.BANK.value, FundType.CASH.value):
            raise InvalidShare("Payment method must be 'bank' or 'cash'")

        async with self.locks.lock_for(project_id):
            pool = await self.store.get_one(
                PercentagePool, project_id=project_id, currency=currency, type=payment_method
            )
            if pool is None:
                raise PoolMissing(
                    f"Project {project_id} has no {payment_method} percentage pool in {currency}"
                )

            fee = round_money(amount * pool.percentage / HUNDRED)
            log = await self.store.insert(
                PercentageLog,
                {
                    "project_id": project_id,
                    "amount": fee,
                    "percentage": pool.percentage,
                    "distributed": False,
                    "expense_id": expense_id,
                    "payment_id": payment_id,
                },
            )
            await self.store.update(
                PercentagePool,
                pool.id,
                {
                    "period_percentage": pool.period_percentage + fee,
                    "total_percentage": pool.total_percentage + fee,
                },
            )

        logger.info(
            "Accrued %s (%s%% of %s) into %s pool of project %d",
            fee,
            pool.percentage,
            amount,
            payment_method,
            project_id,
        )
        await AuditService.log(
            self.store,
            "percentage_log",
            log.id,
            "create",
            actor.id,
            {"amount": str(fee), "payment_amount": str(amount), "type": payment_method},
        )
        return log


__all__ = ["PercentageAccrualService"]
