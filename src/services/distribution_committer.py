"""Distribution committer: writes one percentage distribution run to the ledger.

Step order is fixed and load-bearing. Logs are marked distributed only after
their periods and line items exist, so an interrupted run leaves revenue
"allocated but not consumed" rather than "consumed but not allocated".
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Sequence

from src.models.account import Account, AccountPurpose, AccountType
from src.models.distribution import (
    CompanyDiscount,
    DistributionPeriod,
    EmployeeDiscount,
    FundType,
    HeldRecord,
    ParticipantType,
    PeriodLineItem,
)
from src.models.payroll import PayrollEntry, PayrollStatus
from src.models.project import PercentageLog, PercentagePool
from src.services.distribution_calculator import (
    ZERO,
    DistributionCalculator,
    DistributionPlan,
    ParticipantShare,
    ShareBreakdown,
    round_money,
    split_proportionally,
)
from src.services.errors import (
    AccountMissing,
    DistributionError,
    LedgerStoreError,
    SelectionEmpty,
    StepWriteError,
)
from src.services.ledger_runner import LedgerRunner, ProjectLockRegistry, RunContext
from src.services.ledger_store import LedgerStore
from src.services.results import Actor, DistributionResult
from src.services.selection_service import Selection, SelectionService

logger = logging.getLogger(__name__)

FUND_ORDER = (FundType.BANK.value, FundType.CASH.value)


class CommitStep(str, Enum):
    """Write steps of a percentage distribution, in execution order."""

    CREATE_PERIODS = "create_periods"
    CREATE_LINE_ITEMS = "create_line_items"
    MARK_LOGS = "mark_logs"
    RECORD_HELD = "record_held"
    RECORD_DISCOUNTS = "record_discounts"
    UPDATE_EMPLOYEE_ACCOUNTS = "update_employee_accounts"
    CREATE_PAYROLL = "create_payroll"
    UPDATE_COMPANY_ACCOUNTS = "update_company_accounts"
    REDUCE_POOLS = "reduce_pools"


@dataclass
class DistributionContext(RunContext):
    """Everything the steps of one percentage run need."""

    selection: Selection | None = None
    plan: DistributionPlan | None = None
    employee_accounts: dict[int, Account] = field(default_factory=dict)
    company_accounts: dict[str, Account] = field(default_factory=dict)
    periods: dict[str, DistributionPeriod] = field(default_factory=dict)

    @property
    def primary_period(self) -> DistributionPeriod:
        """First period created (bank before cash)."""
        return next(iter(self.periods.values()))

    def period_for(self, fund_type: str) -> DistributionPeriod:
        return self.periods.get(fund_type) or self.primary_period


class DistributionCommitter(LedgerRunner):
    """Executes the ordered write sequence of a percentage distribution."""

    kind = "percentage"
    audit_entity = "distribution"

    def __init__(
        self,
        store: LedgerStore,
        locks: ProjectLockRegistry | None = None,
        calculator: DistributionCalculator | None = None,
    ):
        super().__init__(store, locks)
        self.calculator = calculator or DistributionCalculator()
        self.selection_service = SelectionService(store)

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
        """Commit a distribution run.

        The caller's selection is re-validated against the ledger and the shares
        are recomputed from the fresh pool amounts before the first write.

        Args:
            project_id: Project being distributed
            selection: Result of ``select_logs`` shown to the user
            participants: Employee shares
            company: Company share
            actor: User committing the run
            run_key: Idempotency key; a completed run with this key is not re-applied
            cancel_event: Stops the run between steps when set

        Returns:
            DistributionResult; never raises for domain failures
        """
        async with self.locks.lock_for(project_id):
            ctx = DistributionContext(project_id=project_id, actor_id=actor.id)
            try:
                completed = await self.find_completed_run(run_key)
                if completed is not None:
                    logger.info("Run %s already applied, skipping", run_key)
                    return DistributionResult.ok(
                        {"run_key": run_key, "already_applied": True},
                        message="Distribution already applied",
                    )

                await self._prepare(ctx, selection, participants, company)
                await self.begin_run(ctx, run_key)
            except DistributionError as exc:
                logger.warning("Distribution for project %d rejected: %s", project_id, exc.message)
                return DistributionResult.from_error(exc)

            try:
                await self.run_steps(
                    ctx,
                    [
                        (CommitStep.CREATE_PERIODS, self._create_periods),
                        (CommitStep.CREATE_LINE_ITEMS, self._create_line_items),
                        (CommitStep.MARK_LOGS, self._mark_logs),
                        (CommitStep.RECORD_HELD, self._record_held),
                        (CommitStep.RECORD_DISCOUNTS, self._record_discounts),
                        (CommitStep.UPDATE_EMPLOYEE_ACCOUNTS, self._update_employee_accounts),
                        (CommitStep.CREATE_PAYROLL, self._create_payroll),
                        (CommitStep.UPDATE_COMPANY_ACCOUNTS, self._update_company_accounts),
                        (CommitStep.REDUCE_POOLS, self._reduce_pools),
                    ],
                    cancel_event=cancel_event,
                    partial_success_steps=frozenset({CommitStep.MARK_LOGS}),
                )
            except StepWriteError as exc:
                await self.fail_run(ctx, exc)
                return DistributionResult.from_error(exc)

            summary = {
                "log_ids": ctx.selection.log_ids,
                "selected_total": str(ctx.selection.selected_total),
                "selected_cash": str(ctx.selection.selected_cash),
                "selected_bank": str(ctx.selection.selected_bank),
                "total_pool": str(ctx.selection.total_pool),
                "period_ids": [period.id for period in ctx.periods.values()],
            }
            await self.complete_run(ctx, summary)
            return DistributionResult.ok(
                {"run_key": ctx.run_key, "already_applied": False, **summary},
                message="Distribution committed",
            )

    async def _prepare(
        self,
        ctx: DistributionContext,
        selection: Selection,
        participants: Sequence[ParticipantShare],
        company: ParticipantShare,
    ) -> None:
        """Precondition checks; no writes."""
        ctx.selection = await self.selection_service.select_logs(
            ctx.project_id, selection.log_ids, selection.currency
        )
        if ctx.selection.selected_total <= 0:
            raise SelectionEmpty("Selected logs carry no amount to distribute")

        ctx.plan = self.calculator.compute_shares(ctx.selection.pool, participants, company)
        for share in ctx.plan.negative_participants:
            logger.warning(
                "Project %d: participant %s has negative total %s",
                ctx.project_id,
                share.employee_id if share.employee_id is not None else "company",
                share.total,
            )

        await self._resolve_accounts(ctx)

    async def _resolve_accounts(self, ctx: DistributionContext) -> None:
        currency = ctx.selection.currency
        employee_ids = [share.employee_id for share in ctx.plan.employees]
        accounts = await self.store.get(
            Account,
            account_type=AccountType.EMPLOYEE.value,
            purpose=AccountPurpose.MAIN.value,
            employee_id=employee_ids,
            currency=currency,
        )
        for account in accounts:
            ctx.employee_accounts.setdefault(account.employee_id, account)
        missing_employees = [eid for eid in employee_ids if eid not in ctx.employee_accounts]

        required = {AccountPurpose.MAIN.value}
        if ctx.plan.total_discount > 0:
            required.add(AccountPurpose.DISCOUNT.value)
        if ctx.plan.employee_bank_held + ctx.plan.employee_cash_held > 0:
            required.add(AccountPurpose.HELD.value)

        company_accounts = await self.store.get(
            Account,
            account_type=AccountType.COMPANY.value,
            purpose=sorted(required),
            currency=currency,
        )
        for account in company_accounts:
            ctx.company_accounts.setdefault(account.purpose, account)
        missing_company = required - set(ctx.company_accounts)

        if missing_employees or missing_company:
            raise AccountMissing(missing_employees, missing_company)

    @staticmethod
    def _line_item(
        period: DistributionPeriod, share: ShareBreakdown, only_leg: str | None
    ) -> dict:
        """Line item for one participant; ``only_leg`` zeroes out the other fund leg."""
        row = {
            "period_id": period.id,
            "participant_type": (
                ParticipantType.COMPANY.value if share.is_company else ParticipantType.EMPLOYEE.value
            ),
            "employee_id": share.employee_id,
            "percentage": share.percentage,
            "note": share.note,
            "bank_amount": share.bank_amount,
            "cash_amount": share.cash_amount,
            "bank_held": share.bank_held,
            "cash_held": share.cash_held,
            "discount": share.discount,
            "total": share.total,
        }
        if only_leg is None:
            return row

        bank_discount, cash_discount = share.discount_legs
        if only_leg == FundType.BANK.value:
            row.update(
                cash_amount=ZERO,
                cash_held=ZERO,
                discount=bank_discount,
                total=share.net_bank,
            )
        else:
            row.update(
                bank_amount=ZERO,
                bank_held=ZERO,
                discount=cash_discount,
                total=share.net_cash,
            )
        return row

    async def _create_periods(self, ctx: DistributionContext) -> None:
        selection = ctx.selection
        start_date = min(
            (log.created_at.date() for log in selection.logs if log.created_at), default=None
        )
        for fund_type in FUND_ORDER:
            amount = selection.leg_amount(fund_type)
            if amount <= 0:
                continue
            ctx.periods[fund_type] = await self.store.insert(
                DistributionPeriod,
                {
                    "project_id": ctx.project_id,
                    "run_id": ctx.run.id if ctx.run else None,
                    "created_by": ctx.actor_id,
                    "start_date": start_date,
                    "end_date": date.today(),
                    "total_amount": amount,
                    "type": fund_type,
                    "currency": selection.currency,
                },
            )

    async def _create_line_items(self, ctx: DistributionContext) -> None:
        only_leg_per_period = len(ctx.periods) > 1
        for fund_type, period in ctx.periods.items():
            only_leg = fund_type if only_leg_per_period else None
            await self.store.insert(PeriodLineItem, self._line_item(period, ctx.plan.company, only_leg))
            await self.store.insert(
                PeriodLineItem,
                [self._line_item(period, share, only_leg) for share in ctx.plan.employees],
            )

    async def _mark_logs(self, ctx: DistributionContext) -> None:
        log_ids = ctx.selection.log_ids
        updated = await self.store.update(
            PercentageLog,
            {"id": log_ids, "project_id": ctx.project_id, "distributed": False},
            {"distributed": True},
        )
        if updated != len(log_ids):
            raise LedgerStoreError(
                "update",
                PercentageLog.__tablename__,
                f"marked {updated} of {len(log_ids)} logs as distributed",
            )

    async def _record_held(self, ctx: DistributionContext) -> None:
        rows = []
        for share in ctx.plan.employees:
            for fund_type, amount in (
                (FundType.BANK.value, share.bank_held),
                (FundType.CASH.value, share.cash_held),
            ):
                if amount > 0:
                    rows.append(
                        {
                            "employee_id": share.employee_id,
                            "period_id": ctx.period_for(fund_type).id,
                            "amount": amount,
                            "type": fund_type,
                            "note": share.note,
                        }
                    )
        if rows:
            await self.store.insert(HeldRecord, rows)

    async def _record_discounts(self, ctx: DistributionContext) -> None:
        rows = [
            {
                "employee_id": share.employee_id,
                "period_id": ctx.primary_period.id,
                "amount": share.discount,
                "note": share.note,
            }
            for share in ctx.plan.employees
            if share.discount > 0
        ]
        if rows:
            await self.store.insert(EmployeeDiscount, rows)

    async def _update_employee_accounts(self, ctx: DistributionContext) -> None:
        # Read-modify-write per account; safe only while the project lock is held
        for share in ctx.plan.employees:
            account = await self.store.get_one(Account, id=ctx.employee_accounts[share.employee_id].id)
            await self.store.update(
                Account,
                account.id,
                {
                    "bank_balance": account.bank_balance + max(ZERO, share.net_bank),
                    "cash_balance": account.cash_balance + max(ZERO, share.net_cash),
                    "bank_held": account.bank_held + share.bank_held,
                    "cash_held": account.cash_held + share.cash_held,
                },
            )

    async def _create_payroll(self, ctx: DistributionContext) -> None:
        rows = []
        for share in ctx.plan.employees:
            for fund_type, net in (
                (FundType.BANK.value, share.net_bank),
                (FundType.CASH.value, share.net_cash),
            ):
                if net > 0:
                    rows.append(
                        {
                            "employee_id": share.employee_id,
                            "project_id": ctx.project_id,
                            "pay_date": date.today(),
                            "total_salary": net,
                            "basic_salary": ZERO,
                            "percentage_salary": net,
                            "payment_method": fund_type,
                            "status": PayrollStatus.PENDING.value,
                            "created_by": ctx.actor_id,
                        }
                    )
        if rows:
            await self.store.insert(PayrollEntry, rows)

    async def _update_company_accounts(self, ctx: DistributionContext) -> None:
        plan, selection = ctx.plan, ctx.selection

        main = await self.store.get_one(Account, id=ctx.company_accounts[AccountPurpose.MAIN.value].id)
        await self.store.update(
            Account,
            main.id,
            {
                "bank_balance": main.bank_balance + plan.company.bank_amount,
                "cash_balance": main.cash_balance + plan.company.cash_amount,
            },
        )

        total_discount = plan.total_discount
        if total_discount > 0:
            if selection.selected_total > 0:
                bank_part, cash_part = split_proportionally(
                    total_discount, selection.selected_bank, selection.selected_cash
                )
            else:
                bank_part = round_money(total_discount / 2)
                cash_part = total_discount - bank_part
            discount_account = await self.store.get_one(
                Account, id=ctx.company_accounts[AccountPurpose.DISCOUNT.value].id
            )
            await self.store.update(
                Account,
                discount_account.id,
                {
                    "bank_balance": discount_account.bank_balance + bank_part,
                    "cash_balance": discount_account.cash_balance + cash_part,
                },
            )
            if plan.company.discount > 0:
                await self.store.insert(
                    CompanyDiscount,
                    {
                        "period_id": ctx.primary_period.id,
                        "amount": plan.company.discount,
                        "note": plan.company.note,
                    },
                )

        bank_held, cash_held = plan.employee_bank_held, plan.employee_cash_held
        if bank_held + cash_held > 0:
            held_account = await self.store.get_one(
                Account, id=ctx.company_accounts[AccountPurpose.HELD.value].id
            )
            await self.store.update(
                Account,
                held_account.id,
                {
                    "bank_balance": held_account.bank_balance + bank_held,
                    "cash_balance": held_account.cash_balance + cash_held,
                },
            )

    async def _reduce_pools(self, ctx: DistributionContext) -> None:
        selection = ctx.selection
        pools = await self.selection_service.get_pools(ctx.project_id, selection.currency)
        for fund_type in FUND_ORDER:
            amount = selection.leg_amount(fund_type)
            pool = pools.get(fund_type)
            if pool is None or amount <= 0:
                continue
            new_balance = max(ZERO, pool.period_percentage - amount)
            await self.store.update(
                PercentagePool,
                pool.id,
                {"period_percentage": new_balance, "period_start": datetime.now(timezone.utc)},
            )
            logger.info(
                "Pool %s for project %d reduced %s -> %s",
                fund_type,
                ctx.project_id,
                pool.period_percentage,
                new_balance,
            )


__all__ = ["CommitStep", "DistributionCommitter", "DistributionContext"]
