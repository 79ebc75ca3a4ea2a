"""Integration tests for the percentage distribution commit sequence."""

import asyncio
from decimal import Decimal

import pytest

from src.models import (
    Account,
    AuditLog,
    CompanyDiscount,
    DistributionPeriod,
    DistributionRun,
    EmployeeDiscount,
    HeldRecord,
    PayrollEntry,
    PercentageLog,
    PercentagePool,
    PeriodLineItem,
)
from src.services.distribution_calculator import ParticipantShare
from src.services.distribution_committer import CommitStep, DistributionCommitter
from src.services.errors import LedgerStoreError
from src.services.results import Actor
from src.services.selection_service import SelectionService

ACTOR = Actor(id=42)
ALL_STEPS = [step.value for step in CommitStep]


@pytest.fixture
def committer(store, locks):
    return DistributionCommitter(store, locks)


async def _select(store, ledger, log_ids=None):
    return await SelectionService(store).select_logs(ledger.project_id, log_ids or ledger.log_ids)


async def _account(store, account_id):
    return await store.get_one(Account, id=account_id)


def _shares(ledger, **employee_kwargs):
    return (
        [ParticipantShare(percentage=Decimal("60"), employee_id=ledger.employee_id, **employee_kwargs)],
        ParticipantShare(percentage=Decimal("40")),
    )


@pytest.mark.asyncio
async def test_end_to_end_scenario(committer, store, ledger):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)

    result = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)

    assert result.success, result.message
    assert result.data["already_applied"] is False
    assert result.data["selected_cash"] == "300.00"
    assert result.data["selected_bank"] == "200.00"
    assert result.data["total_pool"] == "1000.00"

    employee = await _account(store, ledger.employee_account_id)
    assert employee.cash_balance == Decimal("180")
    assert employee.bank_balance == Decimal("120")

    company_main = await _account(store, ledger.company_accounts["main"])
    assert company_main.cash_balance == Decimal("120")
    assert company_main.bank_balance == Decimal("80")

    logs = await store.get(PercentageLog, id=ledger.log_ids)
    assert all(log.distributed for log in logs)

    cash_pool = await store.get_one(PercentagePool, id=ledger.cash_pool_id)
    bank_pool = await store.get_one(PercentagePool, id=ledger.bank_pool_id)
    assert cash_pool.period_percentage == Decimal("300")
    assert bank_pool.period_percentage == Decimal("200")
    assert cash_pool.total_percentage == Decimal("600")
    assert cash_pool.period_start is not None

    run = await store.get_one(DistributionRun, run_key=result.data["run_key"])
    assert run.status == "completed"
    assert run.last_completed_step == CommitStep.REDUCE_POOLS.value
    assert run.created_by == 42


@pytest.mark.asyncio
async def test_two_periods_carry_one_leg_each(committer, store, ledger):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)

    await committer.commit(ledger.project_id, selection, participants, company, ACTOR)

    periods = await store.get(DistributionPeriod, project_id=ledger.project_id)
    assert [(p.type, p.total_amount) for p in periods] == [
        ("bank", Decimal("200")),
        ("cash", Decimal("300")),
    ]
    assert all(p.created_by == 42 for p in periods)

    bank_items = await store.get(PeriodLineItem, period_id=periods[0].id)
    cash_items = await store.get(PeriodLineItem, period_id=periods[1].id)
    assert [item.participant_type for item in bank_items] == ["company", "employee"]

    bank_employee = bank_items[1]
    assert bank_employee.bank_amount == Decimal("120")
    assert bank_employee.cash_amount == Decimal("0")
    assert bank_employee.total == Decimal("120")

    cash_employee = cash_items[1]
    assert cash_employee.cash_amount == Decimal("180")
    assert cash_employee.bank_amount == Decimal("0")
    assert cash_employee.total == Decimal("180")


@pytest.mark.asyncio
async def test_single_period_when_one_pool_is_empty(committer, store, ledger):
    await store.update(PercentagePool, ledger.bank_pool_id, {"period_percentage": Decimal("0")})
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)

    result = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)

    assert result.success
    periods = await store.get(DistributionPeriod, project_id=ledger.project_id)
    assert [p.type for p in periods] == ["cash"]
    items = await store.get(PeriodLineItem, period_id=periods[0].id)
    assert items[1].cash_amount == Decimal("300")
    assert items[1].total == Decimal("300")


@pytest.mark.asyncio
async def test_double_distribution_rejected(committer, store, ledger):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)
    first = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)
    assert first.success

    second = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)

    assert second.success is False
    assert second.code == "selection_stale"
    assert second.details["distributed_ids"] == sorted(ledger.log_ids)
    assert len(await store.get(DistributionPeriod, project_id=ledger.project_id)) == 2


@pytest.mark.asyncio
async def test_partition_incomplete_blocks_any_write(committer, store, ledger):
    selection = await _select(store, ledger)

    result = await committer.commit(
        ledger.project_id,
        selection,
        [ParticipantShare(percentage=Decimal("60"), employee_id=ledger.employee_id)],
        ParticipantShare(percentage=Decimal("39.99")),
        ACTOR,
    )

    assert result.code == "partition_incomplete"
    assert result.details["deviation"] == "-0.01"
    assert await store.get(DistributionPeriod) == []
    assert await store.get(DistributionRun) == []


@pytest.mark.asyncio
async def test_account_missing_blocks_run(committer, store, ledger):
    await store.update(Account, ledger.second_employee_account_id, {"currency": "USD"})
    selection = await _select(store, ledger)

    result = await committer.commit(
        ledger.project_id,
        selection,
        [
            ParticipantShare(percentage=Decimal("30"), employee_id=ledger.employee_id),
            ParticipantShare(percentage=Decimal("30"), employee_id=ledger.second_employee_id),
        ],
        ParticipantShare(percentage=Decimal("40")),
        ACTOR,
    )

    assert result.code == "account_missing"
    assert result.details["employee_ids"] == [ledger.second_employee_id]
    assert await store.get(DistributionPeriod) == []


@pytest.mark.asyncio
async def test_held_discount_and_net_floor(committer, store, ledger):
    selection = await _select(store, ledger)
    participants, company = _shares(
        ledger, cash_held=Decimal("200"), bank_held=Decimal("20"), discount=Decimal("10")
    )

    result = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)
    assert result.success, result.message

    # Gross cash 180, bank 120; discount 10 splits 4 bank / 6 cash
    employee = await _account(store, ledger.employee_account_id)
    assert employee.cash_balance == Decimal("0")
    assert employee.bank_balance == Decimal("96")
    assert employee.cash_held == Decimal("200")
    assert employee.bank_held == Decimal("20")

    held = await store.get(HeldRecord, employee_id=ledger.employee_id)
    assert sorted((h.type, h.amount) for h in held) == [
        ("bank", Decimal("20")),
        ("cash", Decimal("200")),
    ]

    discounts = await store.get(EmployeeDiscount, employee_id=ledger.employee_id)
    assert [d.amount for d in discounts] == [Decimal("10")]

    payroll = await store.get(PayrollEntry, employee_id=ledger.employee_id)
    assert [(p.payment_method, p.total_salary, p.status) for p in payroll] == [
        ("bank", Decimal("96"), "pending")
    ]

    company_discount = await _account(store, ledger.company_accounts["discount"])
    assert company_discount.bank_balance == Decimal("4")
    assert company_discount.cash_balance == Decimal("6")

    company_held = await _account(store, ledger.company_accounts["held"])
    assert company_held.bank_balance == Decimal("20")
    assert company_held.cash_balance == Decimal("200")


@pytest.mark.asyncio
async def test_company_discount_recorded(committer, store, ledger):
    selection = await _select(store, ledger)
    participants, _ = _shares(ledger)
    company = ParticipantShare(percentage=Decimal("40"), discount=Decimal("5"), note="fees")

    result = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)

    assert result.success
    records = await store.get(CompanyDiscount)
    assert [(r.amount, r.note) for r in records] == [(Decimal("5"), "fees")]
    company_discount = await _account(store, ledger.company_accounts["discount"])
    assert company_discount.bank_balance + company_discount.cash_balance == Decimal("5")


@pytest.mark.asyncio
async def test_mark_logs_failure_is_partial_success(committer, store, ledger, monkeypatch):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)
    real_update = store.update

    async def failing_update(model, target, patch):
        if model is PercentageLog:
            raise LedgerStoreError("update", "project_percentage_logs", "connection reset")
        return await real_update(model, target, patch)

    monkeypatch.setattr(store, "update", failing_update)

    result = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)

    assert result.success is False
    assert result.code == "partial_success"
    assert result.severity == "critical"
    assert result.failed_step == "mark_logs"
    assert result.completed_steps == ["create_periods", "create_line_items"]
    assert "Do NOT retry" in result.message

    # Periods exist, logs are still open and no money moved
    assert len(await store.get(DistributionPeriod)) == 2
    assert all(not log.distributed for log in await store.get(PercentageLog, id=ledger.log_ids))
    employee = await _account(store, ledger.employee_account_id)
    assert employee.cash_balance == Decimal("0")

    run = (await store.get(DistributionRun))[0]
    assert run.status == "failed"
    assert run.failed_step == "mark_logs"
    audit = await store.get(AuditLog, action="fail")
    assert audit[0].changes["code"] == "partial_success"


@pytest.mark.asyncio
async def test_later_step_failure_reports_step(committer, store, ledger, monkeypatch):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)
    real_insert = store.insert

    async def failing_insert(model, rows):
        if model is PayrollEntry:
            raise LedgerStoreError("insert", "payroll", "constraint failed")
        return await real_insert(model, rows)

    monkeypatch.setattr(store, "insert", failing_insert)

    result = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)

    assert result.code == "step_write_failed"
    assert result.severity == "error"
    assert result.failed_step == "create_payroll"
    assert result.completed_steps == ALL_STEPS[:6]
    # Nothing after the failed step ran
    cash_pool = await store.get_one(PercentagePool, id=ledger.cash_pool_id)
    assert cash_pool.period_percentage == Decimal("600")


@pytest.mark.asyncio
async def test_run_key_makes_commit_idempotent(committer, store, ledger):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)

    first = await committer.commit(
        ledger.project_id, selection, participants, company, ACTOR, run_key="run-2026-10"
    )
    second = await committer.commit(
        ledger.project_id, selection, participants, company, ACTOR, run_key="run-2026-10"
    )

    assert first.success and second.success
    assert second.data == {"run_key": "run-2026-10", "already_applied": True}
    employee = await _account(store, ledger.employee_account_id)
    assert employee.cash_balance == Decimal("180")


@pytest.mark.asyncio
async def test_incomplete_run_key_needs_reconciliation(committer, store, ledger):
    await store.insert(
        DistributionRun,
        {
            "run_key": "half-done",
            "project_id": ledger.project_id,
            "kind": "percentage",
            "status": "failed",
            "last_completed_step": "create_line_items",
        },
    )
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)

    result = await committer.commit(
        ledger.project_id, selection, participants, company, ACTOR, run_key="half-done"
    )

    assert result.code == "run_incomplete"
    assert result.severity == "critical"
    assert result.details["last_completed_step"] == "create_line_items"


@pytest.mark.asyncio
async def test_cancel_before_start_writes_nothing(committer, store, ledger):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)
    cancel = asyncio.Event()
    cancel.set()

    result = await committer.commit(
        ledger.project_id, selection, participants, company, ACTOR, cancel_event=cancel
    )

    assert result.code == "commit_cancelled"
    assert result.failed_step == "create_periods"
    assert result.completed_steps == []
    assert await store.get(DistributionPeriod) == []


@pytest.mark.asyncio
async def test_cancel_between_steps_keeps_issued_writes(committer, store, ledger, monkeypatch):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)
    cancel = asyncio.Event()
    real_insert = store.insert

    async def insert_then_cancel(model, rows):
        inserted = await real_insert(model, rows)
        if model is PeriodLineItem:
            cancel.set()
        return inserted

    monkeypatch.setattr(store, "insert", insert_then_cancel)

    result = await committer.commit(
        ledger.project_id, selection, participants, company, ACTOR, cancel_event=cancel
    )

    assert result.code == "commit_cancelled"
    assert result.severity == "critical"
    assert result.failed_step == "mark_logs"
    assert result.completed_steps == ["create_periods", "create_line_items"]
    assert len(await store.get(PeriodLineItem)) == 4


@pytest.mark.asyncio
async def test_same_project_runs_are_serialized(store, locks, ledger):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)
    first = DistributionCommitter(store, locks)
    second = DistributionCommitter(store, locks)

    results = await asyncio.gather(
        first.commit(ledger.project_id, selection, participants, company, ACTOR),
        second.commit(ledger.project_id, selection, participants, company, ACTOR),
    )

    assert sorted(r.success for r in results) == [False, True]
    loser = next(r for r in results if not r.success)
    assert loser.code == "selection_stale"
    employee = await _account(store, ledger.employee_account_id)
    assert employee.cash_balance == Decimal("180")
    assert not locks.is_locked(ledger.project_id)


@pytest.mark.asyncio
async def test_commit_writes_audit_entry(committer, store, ledger):
    selection = await _select(store, ledger)
    participants, company = _shares(ledger)

    result = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)

    entries = await store.get(AuditLog, entity_type="distribution", action="commit")
    assert len(entries) == 1
    assert entries[0].actor_id == 42
    assert entries[0].entity_id == ledger.project_id
    assert entries[0].changes["run_key"] == result.data["run_key"]
    assert entries[0].changes["selected_total"] == "500.00"
