"""Distribution engine facade.

Single entry point for callers (HTTP layer, scripts). Every operation takes
its actor explicitly and returns a DistributionResult; domain errors and
unexpected exceptions never escape this boundary.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from src.services.distribution_calculator import (
    DistributionCalculator,
    ParticipantShare,
    PoolAmounts,
)
from src.services.distribution_committer import DistributionCommitter
from src.services.errors import DistributionError
from src.services.ledger_runner import ProjectLockRegistry
from src.services.ledger_store import LedgerStore
from src.services.maps_distribution_service import MapItem, MapsDistributionService
from src.services.payroll_service import PayrollService
from src.services.percentage_accrual_service import PercentageAccrualService
from src.services.results import Actor, DistributionResult
from src.services.selection_service import Selection, SelectionService

logger = logging.getLogger(__name__)


class DistributionService:
    """Public operations of the percentage and maps distribution engine."""

    def __init__(
        self,
        session: AsyncSession,
        locks: ProjectLockRegistry | None = None,
        currency: str = "LYD",
    ):
        """Initialize with database session.

        Args:
            session: AsyncSession for database operations
            locks: Per-project lock registry (process-wide when omitted)
            currency: Default currency for pools and accounts
        """
        self.store = LedgerStore(session)
        self.currency = currency
        self.calculator = DistributionCalculator()
        self.selection_service = SelectionService(self.store)
        self.committer = DistributionCommitter(self.store, locks, self.calculator)
        self.maps_service = MapsDistributionService(self.store, locks, self.calculator)
        self.accrual_service = PercentageAccrualService(self.store, locks)
        self.payroll_service = PayrollService(self.store, currency, locks)

    async def _guard(self, operation: str, call: Callable[[], Awaitable[Any]]) -> DistributionResult:
        """Run ``call`` and convert its outcome to a DistributionResult."""
        try:
            value = await call()
        except DistributionError as exc:
            logger.warning("%s failed: %s", operation, exc.message)
            return DistributionResult.from_error(exc)
        except Exception as exc:
            logger.exception("Unexpected error in %s", operation)
            return DistributionResult(
                success=False,
                message=f"Unexpected error in {operation}: {exc}",
                code="unexpected_error",
                severity="error",
                http_status=500,
            )
        if isinstance(value, DistributionResult):
            return value
        return DistributionResult.ok(value)

    async def list_undistributed_logs(self, project_id: int) -> DistributionResult:
        return await self._guard(
            "list_undistributed_logs",
            lambda: self.selection_service.list_undistributed_logs(project_id),
        )

    async def select_logs(
        self, project_id: int, log_ids: Iterable[int], currency: str | None = None
    ) -> DistributionResult:
        """Validate a log selection; ``data`` is a Selection on success."""
        return await self._guard(
            "select_logs",
            lambda: self.selection_service.select_logs(project_id, log_ids, currency or self.currency),
        )

    async def compute_shares(
        self,
        pool: PoolAmounts,
        participants: Sequence[ParticipantShare],
        company: ParticipantShare,
    ) -> DistributionResult:
        """Preview shares; ``data`` is a DistributionPlan on success."""

        async def compute():
            return self.calculator.compute_shares(pool, participants, company)

        return await self._guard("compute_shares", compute)

    async def commit(
        self,
        project_id: int,
        selection: Selection,
        participants: Sequence[ParticipantShare],
        company: ParticipantShare,
        actor: Actor,
        run_key: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DistributionResult:
        return await self._guard(
            "commit",
            lambda: self.committer.commit(
                project_id, selection, participants, company, actor, run_key, cancel_event
            ),
        )

    async def commit_maps(
        self,
        project_id: int,
        map_items: Sequence[MapItem],
        payment_method: str,
        actor: Actor,
        currency: str | None = None,
        description: str | None = None,
        run_key: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DistributionResult:
        return await self._guard(
            "commit_maps",
            lambda: self.maps_service.commit_maps(
                project_id,
                map_items,
                payment_method,
                actor,
                currency or self.currency,
                description,
                run_key,
                cancel_event,
            ),
        )

    async def record_payment_fee(
        self,
        project_id: int,
        amount: Decimal,
        payment_method: str,
        actor: Actor,
        expense_id: int | None = None,
        payment_id: int | None = None,
    ) -> DistributionResult:
        return await self._guard(
            "record_payment_fee",
            lambda: self.accrual_service.record_payment_fee(
                project_id, amount, payment_method, actor, self.currency, expense_id, payment_id
            ),
        )

    async def accept_payroll(self, payroll_id: int, actor: Actor) -> DistributionResult:
        return await self._guard(
            "accept_payroll", lambda: self.payroll_service.accept_payroll(payroll_id, actor)
        )

    async def reject_payroll(self, payroll_id: int, actor: Actor) -> DistributionResult:
        return await self._guard(
            "reject_payroll", lambda: self.payroll_service.reject_payroll(payroll_id, actor)
        )


__all__ = ["DistributionService"]
