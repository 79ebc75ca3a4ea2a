"""Payroll approval: pay out pending entries created by distributions."""

import logging
from datetime import datetime, timezone

from src.models.account import Account, AccountPurpose, AccountType
from src.models.payroll import PayrollEntry, PayrollStatus
from src.services.audit_service import AuditService
from src.services.errors import (
    AccountMissing,
    DistributionError,
    PayrollMissing,
    PayrollNotPending,
)
from src.services.ledger_runner import ProjectLockRegistry, project_locks
from src.services.ledger_store import LedgerStore
from src.services.results import Actor

logger = logging.getLogger(__name__)


class PayrollService:
    """Accept or reject pending payroll entries."""

    def __init__(
        self, store: LedgerStore, currency: str = "LYD", locks: ProjectLockRegistry | None = None
    ):
        """Initialize with ledger store, currency of employee accounts and lock registry."""
        self.store = store
        self.currency = currency
        self.locks = locks or project_locks

    async def _get_entry(self, payroll_id: int) -> PayrollEntry:
        entry = await self.store.get_one(PayrollEntry, id=payroll_id)
        if entry is None:
            raise PayrollMissing(payroll_id)
        return entry

    async def _get_pending(self, payroll_id: int) -> PayrollEntry:
        entry = await self._get_entry(payroll_id)
        if entry.status != PayrollStatus.PENDING.value:
            raise PayrollNotPending(payroll_id, entry.status)
        return entry

    async def _set_status(self, entry: PayrollEntry, status: PayrollStatus, actor: Actor) -> None:
        """Move a pending entry to ``status``; only one caller can win."""
        updated = await self.store.update(
            PayrollEntry,
            {"id": entry.id, "status": PayrollStatus.PENDING.value},
            {
                "status": status.value,
                "approved_by": actor.id,
                "approved_at": datetime.now(timezone.utc),
            },
        )
        if updated != 1:
            current = await self._get_entry(entry.id)
            raise PayrollNotPending(entry.id, current.status)

    async def list_pending(self, project_id: int | None = None) -> list[PayrollEntry]:
        filters = {"status": PayrollStatus.PENDING.value}
        if project_id is not None:
            filters["project_id"] = project_id
        return await self.store.get(PayrollEntry, **filters)

    async def accept_payroll(self, payroll_id: int, actor: Actor) -> PayrollEntry:
        """Pay a pending entry out of the employee's account.

        The entry is marked accepted first, guarded on its pending status, and
        only then is ``total_salary`` deducted from the employee balance of its
        payment method. A failed status change leaves the balance untouched.

        Raises:
            PayrollMissing: Unknown payroll id
            PayrollNotPending: Entry already accepted or rejected
            AccountMissing: Employee has no main account in this currency
        """
        entry = await self._get_entry(payroll_id)
        async with self.locks.lock_for(entry.project_id):
            entry = await self._get_pending(payroll_id)
            account = await self.store.get_one(
                Account,
                account_type=AccountType.EMPLOYEE.value,
                purpose=AccountPurpose.MAIN.value,
                employee_id=entry.employee_id,
                currency=self.currency,
            )
            if account is None:
                raise AccountMissing([entry.employee_id])

            await self._set_status(entry, PayrollStatus.ACCEPTED, actor)

            field_name = f"{entry.payment_method}_balance"
            try:
                await self.store.update(
                    Account,
                    account.id,
                    {field_name: getattr(account, field_name) - entry.total_salary},
                )
            except DistributionError as exc:
                logger.critical(
                    "Payroll %d accepted but %s not deducted from account %d: %s",
                    entry.id,
                    entry.total_salary,
                    account.id,
                    exc.message,
                )
                raise

        logger.info(
            "Payroll %d accepted: %s %s paid to employee %d",
            entry.id,
            entry.total_salary,
            entry.payment_method,
            entry.employee_id,
        )
        await AuditService.log(
            self.store,
            "payroll",
            entry.id,
            "accept",
            actor.id,
            {"total_salary": str(entry.total_salary), "payment_method": entry.payment_method},
        )
        return await self.store.get_one(PayrollEntry, id=entry.id)

    async def reject_payroll(self, payroll_id: int, actor: Actor) -> PayrollEntry:
        """Mark a pending entry rejected. Balances are not touched."""
        entry = await self._get_pending(payroll_id)
        await self._set_status(entry, PayrollStatus.REJECTED, actor)
        logger.info("Payroll %d rejected", entry.id)
        await AuditService.log(self.store, "payroll", entry.id, "reject", actor.id)
        return await self.store.get_one(PayrollEntry, id=entry.id)


__all__ = ["PayrollService"]
