"""Selection engine: validate requested percentage logs and split them across pools."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from src.models.distribution import FundType
from src.models.project import PercentageLog, PercentagePool
from src.services.distribution_calculator import ZERO, PoolAmounts, round_money, split_proportionally
from src.services.errors import SelectionEmpty, SelectionExceedsPool, SelectionStale
from src.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class Selection:
    """Validated subset of undistributed logs and its cash/bank split."""

    project_id: int
    currency: str
    log_ids: list[int]
    selected_total: Decimal
    selected_cash: Decimal
    selected_bank: Decimal
    cash_pool_balance: Decimal = ZERO
    bank_pool_balance: Decimal = ZERO
    logs: list[PercentageLog] = field(default_factory=list, repr=False)

    @property
    def pool(self) -> PoolAmounts:
        """Amounts handed to the distribution calculator."""
        return PoolAmounts(cash=self.selected_cash, bank=self.selected_bank)

    @property
    def total_pool(self) -> Decimal:
        """Pool balances the selection was validated against."""
        return self.cash_pool_balance + self.bank_pool_balance

    def leg_amount(self, fund_type: str) -> Decimal:
        return self.selected_bank if fund_type == FundType.BANK.value else self.selected_cash


class SelectionService:
    """Reads logs and pools and computes a selection. Never writes."""

    def __init__(self, store: LedgerStore):
        """Initialize with ledger store."""
        self.store = store

    async def list_undistributed_logs(self, project_id: int) -> list[PercentageLog]:
        """Logs still available for distribution, oldest first."""
        return await self.store.get(PercentageLog, project_id=project_id, distributed=False)

    async def get_pools(self, project_id: int, currency: str) -> dict[str, PercentagePool]:
        """Pool rows for the project and currency keyed by fund type."""
        pools = await self.store.get(PercentagePool, project_id=project_id, currency=currency)
        return {pool.type: pool for pool in pools}

    async def select_logs(
        self,
        project_id: int,
        log_ids: Iterable[int],
        currency: str = "LYD",
    ) -> Selection:
        """Validate requested logs against the ledger and split their value.

        Args:
            project_id: Project the logs must belong to
            log_ids: Requested log ids (client supplied, possibly stale)
            currency: Currency of the pools to draw from

        Returns:
            Selection with total and proportional cash/bank legs

        Raises:
            SelectionEmpty: No ids requested
            SelectionStale: Some ids are missing, foreign or already distributed
            SelectionExceedsPool: Selected total is larger than both pools together
        """
        requested = sorted(set(log_ids))
        if not requested:
            raise SelectionEmpty()

        logs = await self.store.get(PercentageLog, id=requested, project_id=project_id)
        found = {log.id for log in logs}
        missing = set(requested) - found
        already_distributed = {log.id for log in logs if log.distributed}
        if missing or already_distributed:
            logger.warning(
                "Stale selection for project %d: missing=%s distributed=%s",
                project_id,
                sorted(missing),
                sorted(already_distributed),
            )
            raise SelectionStale(missing, already_distributed)

        selected_total = round_money(sum((log.amount for log in logs), ZERO))

        pools = await self.get_pools(project_id, currency)
        cash_pool = pools.get(FundType.CASH.value)
        bank_pool = pools.get(FundType.BANK.value)
        cash_balance = round_money(cash_pool.period_percentage) if cash_pool else ZERO
        bank_balance = round_money(bank_pool.period_percentage) if bank_pool else ZERO
        total_pool = cash_balance + bank_balance

        if total_pool == 0 or selected_total > total_pool:
            logger.warning(
                "Selection for project %d exceeds pool: selected=%s pool=%s",
                project_id,
                selected_total,
                total_pool,
            )
            raise SelectionExceedsPool(selected_total, total_pool)

        selected_cash, selected_bank = split_proportionally(selected_total, cash_balance, bank_balance)

        logger.info(
            "Selected %d logs for project %d: total=%s cash=%s bank=%s",
            len(logs),
            project_id,
            selected_total,
            selected_cash,
            selected_bank,
        )

        return Selection(
            project_id=project_id,
            currency=currency,
            log_ids=requested,
            selected_total=selected_total,
            selected_cash=selected_cash,
            selected_bank=selected_bank,
            cash_pool_balance=cash_balance,
            bank_pool_balance=bank_balance,
            logs=logs,
        )


__all__ = ["Selection", "SelectionService"]
