"""Maps distribution: share the sale of survey maps between employees and the company.

Each map line is priced (price x quantity) and split by its own percentages.
The whole run is paid by one method (bank or cash) and recorded as a single
project expense.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Sequence

from src.models.account import Account, AccountPurpose, AccountType
from src.models.distribution import FundType, ParticipantType
from src.models.expense import ExpensePayment, ProjectExpense
from src.models.maps import MapsDistribution, MapsDistributionDetail, MapsDistributionItem
from src.models.payroll import PayrollEntry, PayrollStatus
from src.models.project import Project, ProjectBalance
from src.services.distribution_calculator import (
    HUNDRED,
    ZERO,
    DistributionCalculator,
    round_money,
    to_decimal,
)
from src.services.errors import (
    AccountMissing,
    DistributionError,
    InvalidShare,
    PoolMissing,
    ProjectMissing,
    SelectionEmpty,
    StepWriteError,
)
from src.services.ledger_runner import LedgerRunner, ProjectLockRegistry, RunContext
from src.services.ledger_store import LedgerStore
from src.services.results import Actor, DistributionResult

logger = logging.getLogger(__name__)

MAPS_EXPENSE_TYPE = "maps"


class MapsStep(str, Enum):
    """Write steps of a maps distribution, in execution order."""

    CREATE_EXPENSE = "create_expense"
    CREATE_EXPENSE_PAYMENT = "create_expense_payment"
    REDUCE_PROJECT_BALANCE = "reduce_project_balance"
    CREATE_DISTRIBUTION = "create_distribution"
    CREATE_ITEMS = "create_items"
    CREATE_DETAILS = "create_details"
    UPDATE_EMPLOYEE_ACCOUNTS = "update_employee_accounts"
    UPDATE_COMPANY_ACCOUNT = "update_company_account"
    CREATE_PAYROLL = "create_payroll"
    INCREMENT_COUNTERS = "increment_counters"


@dataclass
class MapShare:
    employee_id: int
    percentage: Decimal

    def __post_init__(self):
        self.percentage = round_money(self.percentage)


@dataclass
class MapItem:
    """One map line and how its value is split."""

    map_type_id: int
    price: Decimal
    quantity: Decimal
    employees: list[MapShare] = field(default_factory=list)
    company_percentage: Decimal = ZERO

    def __post_init__(self):
        self.price = round_money(self.price)
        self.quantity = to_decimal(self.quantity)
        self.company_percentage = round_money(self.company_percentage)

    @property
    def total(self) -> Decimal:
        return round_money(self.price * self.quantity)


@dataclass
class MapItemSplit:
    """Computed amounts of one map line."""

    item: MapItem
    employee_amounts: dict[int, Decimal]
    company_amount: Decimal


@dataclass
class MapsContext(RunContext):
    currency: str = "LYD"
    payment_method: str = FundType.CASH.value
    description: str | None = None
    splits: list[MapItemSplit] = field(default_factory=list)
    project: Project | None = None
    balance: ProjectBalance | None = None
    employee_accounts: dict[int, Account] = field(default_factory=dict)
    company_account: Account | None = None
    expense: ProjectExpense | None = None
    payment: ExpensePayment | None = None
    distribution: MapsDistribution | None = None
    item_rows: list[MapsDistributionItem] = field(default_factory=list)

    @property
    def grand_total(self) -> Decimal:
        return sum((split.item.total for split in self.splits), ZERO)

    @property
    def company_total(self) -> Decimal:
        return sum((split.company_amount for split in self.splits), ZERO)

    @property
    def employee_totals(self) -> dict[int, Decimal]:
        totals: dict[int, Decimal] = {}
        for split in self.splits:
            for employee_id, amount in split.employee_amounts.items():
                totals[employee_id] = totals.get(employee_id, ZERO) + amount
        return totals

    @property
    def balance_field(self) -> str:
        return f"{self.payment_method}_balance"


class MapsDistributionService(LedgerRunner):
    """Commits a maps distribution with the same step policy as percentage runs."""

    kind = "maps"
    audit_entity = "maps_distribution"

    def __init__(
        self,
        store: LedgerStore,
        locks: ProjectLockRegistry | None = None,
        calculator: DistributionCalculator | None = None,
    ):
        super().__init__(store, locks)
        self.calculator = calculator or DistributionCalculator()

    def split_item(self, item: MapItem, index: int) -> MapItemSplit:
        """Partition-check one map line and compute each participant's amount.

        Employee amounts are multiplied out; the company receives the remainder
        so the line's details always add up to its total.
        """
        if item.price < 0 or item.quantity <= 0:
            raise InvalidShare(f"Map item {index} needs a price of 0 or more and a positive quantity")
        seen: set[int] = set()
        for share in item.employees:
            if share.employee_id in seen:
                raise InvalidShare(f"Employee {share.employee_id} appears twice in map item {index}")
            seen.add(share.employee_id)
            if share.percentage < 0 or share.percentage > HUNDRED:
                raise InvalidShare(f"Percentages in map item {index} must be between 0 and 100")
        if item.company_percentage < 0 or item.company_percentage > HUNDRED:
            raise InvalidShare(f"Percentages in map item {index} must be between 0 and 100")

        self.calculator.check_partition(
            [*(share.percentage for share in item.employees), item.company_percentage],
            item_index=index,
        )

        total = item.total
        employee_amounts = {
            share.employee_id: round_money(total * share.percentage / HUNDRED)
            for share in item.employees
        }
        company_amount = total - sum(employee_amounts.values(), ZERO)
        return MapItemSplit(item=item, employee_amounts=employee_amounts, company_amount=company_amount)

    async def commit_maps(
        self,
        project_id: int,
        map_items: Sequence[MapItem],
        payment_method: str,
        actor: Actor,
        currency: str = "LYD",
        description: str | None = None,
        run_key: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DistributionResult:
        """Commit a maps distribution paid by a single method.

        Args:
            project_id: Project selling the maps
            map_items: Map lines with their per-line participant split
            payment_method: 'bank' or 'cash'
            actor: User committing the run
            currency: Currency of the project balance and accounts
            description: Free text stored on the expense and header
            run_key: Idempotency key
            cancel_event: Stops the run between steps when set

        Returns:
            DistributionResult; never raises for domain failures
        """
        async with self.locks.lock_for(project_id):
            ctx = MapsContext(
                project_id=project_id,
                actor_id=actor.id,
                currency=currency,
                payment_method=payment_method,
                description=description,
            )
            try:
                if await self.find_completed_run(run_key) is not None:
                    logger.info("Maps run %s already applied, skipping", run_key)
                    return DistributionResult.ok(
                        {"run_key": run_key, "already_applied": True},
                        message="Maps distribution already applied",
                    )
                await self._prepare(ctx, map_items)
                await self.begin_run(ctx, run_key)
            except DistributionError as exc:
                logger.warning("Maps distribution for project %d rejected: %s", project_id, exc.message)
                return DistributionResult.from_error(exc)

            try:
                await self.run_steps(
                    ctx,
                    [
                        (MapsStep.CREATE_EXPENSE, self._create_expense),
                        (MapsStep.CREATE_EXPENSE_PAYMENT, self._create_expense_payment),
                        (MapsStep.REDUCE_PROJECT_BALANCE, self._reduce_project_balance),
                        (MapsStep.CREATE_DISTRIBUTION, self._create_distribution),
                        (MapsStep.CREATE_ITEMS, self._create_items),
                        (MapsStep.CREATE_DETAILS, self._create_details),
                        (MapsStep.UPDATE_EMPLOYEE_ACCOUNTS, self._update_employee_accounts),
                        (MapsStep.UPDATE_COMPANY_ACCOUNT, self._update_company_account),
                        (MapsStep.CREATE_PAYROLL, self._create_payroll),
                        (MapsStep.INCREMENT_COUNTERS, self._increment_counters),
                    ],
                    cancel_event=cancel_event,
                )
            except StepWriteError as exc:
                await self.fail_run(ctx, exc)
                return DistributionResult.from_error(exc)

            summary = {
                "distribution_id": ctx.distribution.id,
                "expense_id": ctx.expense.id,
                "total_amount": str(ctx.grand_total),
                "company_amount": str(ctx.company_total),
                "payment_method": payment_method,
            }
            await self.complete_run(ctx, summary)
            return DistributionResult.ok(
                {"run_key": ctx.run_key, "already_applied": False, **summary},
                message="Maps distribution committed",
            )

    async def _prepare(self, ctx: MapsContext, map_items: Sequence[MapItem]) -> None:
        if ctx.payment_method not in (FundType.BANK.value, FundType.CASH.value):
            raise InvalidShare("Payment method must be 'bank' or 'cash'")
        if not map_items:
            raise SelectionEmpty("Add at least one map item")

        ctx.splits = [self.split_item(item, index) for index, item in enumerate(map_items)]

        ctx.project = await self.store.get_one(Project, id=ctx.project_id)
        if ctx.project is None:
            raise ProjectMissing(ctx.project_id)
        ctx.balance = await self.store.get_one(
            ProjectBalance, project_id=ctx.project_id, currency=ctx.currency
        )
        if ctx.balance is None:
            raise PoolMissing(f"Project {ctx.project_id} has no {ctx.currency} balance")

        employee_ids = sorted(ctx.employee_totals)
        accounts = await self.store.get(
            Account,
            account_type=AccountType.EMPLOYEE.value,
            purpose=AccountPurpose.MAIN.value,
            employee_id=employee_ids,
            currency=ctx.currency,
        )
        for account in accounts:
            ctx.employee_accounts.setdefault(account.employee_id, account)
        ctx.company_account = await self.store.get_one(
            Account,
            account_type=AccountType.COMPANY.value,
            purpose=AccountPurpose.MAIN.value,
            currency=ctx.currency,
        )

        missing = [eid for eid in employee_ids if eid not in ctx.employee_accounts]
        if missing or ctx.company_account is None:
            raise AccountMissing(missing, [] if ctx.company_account else [AccountPurpose.MAIN.value])

    async def _create_expense(self, ctx: MapsContext) -> None:
        grand_total = ctx.grand_total
        ctx.expense = await self.store.insert(
            ProjectExpense,
            {
                "project_id": ctx.project_id,
                "expense_type": MAPS_EXPENSE_TYPE,
                "description": ctx.description,
                "currency": ctx.currency,
                "total_amount": grand_total,
                "amount_paid": grand_total,
                "status": "paid",
                "serial_number": ctx.project.expense_counter + 1,
                "payment_counter": 1,
                "created_by": ctx.actor_id,
            },
        )

    async def _create_expense_payment(self, ctx: MapsContext) -> None:
        ctx.payment = await self.store.insert(
            ExpensePayment,
            {
                "expense_id": ctx.expense.id,
                "amount": ctx.grand_total,
                "payment_method": ctx.payment_method,
                "serial_number": f"{ctx.expense.serial_number}-1",
                "created_by": ctx.actor_id,
            },
        )

    async def _reduce_project_balance(self, ctx: MapsContext) -> None:
        balance = await self.store.get_one(ProjectBalance, id=ctx.balance.id)
        await self.store.update(
            ProjectBalance, balance.id, {"balance": balance.balance - ctx.grand_total}
        )

    async def _create_distribution(self, ctx: MapsContext) -> None:
        ctx.distribution = await self.store.insert(
            MapsDistribution,
            {
                "project_id": ctx.project_id,
                "expense_id": ctx.expense.id,
                "description": ctx.description,
                "total_amount": ctx.grand_total,
                "payment_method": ctx.payment_method,
                "currency": ctx.currency,
                "created_by": ctx.actor_id,
            },
        )

    async def _create_items(self, ctx: MapsContext) -> None:
        ctx.item_rows = await self.store.insert(
            MapsDistributionItem,
            [
                {
                    "distribution_id": ctx.distribution.id,
                    "map_type_id": split.item.map_type_id,
                    "price": split.item.price,
                    "quantity": split.item.quantity,
                    "total": split.item.total,
                }
                for split in ctx.splits
            ],
        )

    async def _create_details(self, ctx: MapsContext) -> None:
        rows = []
        for item_row, split in zip(ctx.item_rows, ctx.splits):
            for share in split.item.employees:
                rows.append(
                    {
                        "item_id": item_row.id,
                        "participant_type": ParticipantType.EMPLOYEE.value,
                        "employee_id": share.employee_id,
                        "percentage": share.percentage,
                        "amount": split.employee_amounts[share.employee_id],
                    }
                )
            rows.append(
                {
                    "item_id": item_row.id,
                    "participant_type": ParticipantType.COMPANY.value,
                    "employee_id": None,
                    "percentage": split.item.company_percentage,
                    "amount": split.company_amount,
                }
            )
        await self.store.insert(MapsDistributionDetail, rows)

    async def _update_employee_accounts(self, ctx: MapsContext) -> None:
        field_name = ctx.balance_field
        for employee_id, amount in ctx.employee_totals.items():
            if amount <= 0:
                continue
            account = await self.store.get_one(Account, id=ctx.employee_accounts[employee_id].id)
            await self.store.update(
                Account, account.id, {field_name: getattr(account, field_name) + amount}
            )

    async def _update_company_account(self, ctx: MapsContext) -> None:
        field_name = ctx.balance_field
        account = await self.store.get_one(Account, id=ctx.company_account.id)
        await self.store.update(
            Account, account.id, {field_name: getattr(account, field_name) + ctx.company_total}
        )

    async def _create_payroll(self, ctx: MapsContext) -> None:
        rows = [
            {
                "employee_id": employee_id,
                "project_id": ctx.project_id,
                "pay_date": date.today(),
                "total_salary": amount,
                "basic_salary": ZERO,
                "percentage_salary": amount,
                "payment_method": ctx.payment_method,
                "status": PayrollStatus.PENDING.value,
                "created_by": ctx.actor_id,
            }
            for employee_id, amount in ctx.employee_totals.items()
            if amount > 0
        ]
        if rows:
            await self.store.insert(PayrollEntry, rows)

    async def _increment_counters(self, ctx: MapsContext) -> None:
        project = await self.store.get_one(Project, id=ctx.project_id)
        await self.store.update(
            Project,
            project.id,
            {
                "expense_counter": project.expense_counter + 1,
                "map_counter": project.map_counter + 1,
            },
        )


__all__ = ["MapItem", "MapShare", "MapsDistributionService", "MapsStep"]
