"""Integration tests for payment fee accrual and payroll approval."""

import asyncio
from decimal import Decimal

import pytest

from src.models import Account, AuditLog, PayrollEntry, PercentageLog, PercentagePool
from src.services.distribution_calculator import ParticipantShare
from src.services.distribution_committer import DistributionCommitter
from src.services.errors import (
    AccountMissing,
    InvalidShare,
    LedgerStoreError,
    PayrollMissing,
    PayrollNotPending,
    PoolMissing,
)
from src.services.ledger_store import LedgerStore
from src.services.payroll_service import PayrollService
from src.services.percentage_accrual_service import PercentageAccrualService
from src.services.results import Actor
from src.services.selection_service import SelectionService

ACTOR = Actor(id=3)


@pytest.fixture
def accrual(store, locks):
    return PercentageAccrualService(store, locks)


@pytest.fixture
def payroll(store, locks):
    return PayrollService(store, locks=locks)


def _shares(ledger):
    return (
        [ParticipantShare(percentage=Decimal("60"), employee_id=ledger.employee_id)],
        ParticipantShare(percentage=Decimal("40")),
    )


class TestPaymentFeeAccrual:
    @pytest.mark.asyncio
    async def test_fee_grows_pool_and_creates_log(self, accrual, store, ledger):
        log = await accrual.record_payment_fee(
            ledger.project_id, Decimal("1234.56"), "cash", ACTOR, payment_id=None
        )

        assert log.amount == Decimal("123.46")
        assert log.percentage == Decimal("10")
        assert log.distributed is False

        pool = await store.get_one(PercentagePool, id=ledger.cash_pool_id)
        assert pool.period_percentage == Decimal("723.46")
        assert pool.total_percentage == Decimal("723.46")

        audit = await store.get(AuditLog, entity_type="percentage_log")
        assert audit[0].entity_id == log.id
        assert audit[0].changes["amount"] == "123.46"

    @pytest.mark.asyncio
    async def test_accrued_log_is_selectable(self, accrual, store, ledger):
        log = await accrual.record_payment_fee(ledger.project_id, Decimal("1000"), "bank", ACTOR)

        selection = await SelectionService(store).select_logs(ledger.project_id, [log.id])

        assert selection.selected_total == Decimal("100")
        assert selection.total_pool == Decimal("1100")

    @pytest.mark.asyncio
    async def test_missing_pool(self, accrual, store, ledger):
        with pytest.raises(PoolMissing):
            await accrual.record_payment_fee(
                ledger.project_id, Decimal("10"), "cash", ACTOR, currency="USD"
            )
        assert len(await store.get(PercentageLog)) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount, method", [(Decimal("0"), "cash"), (Decimal("5"), "card")])
    async def test_invalid_payment(self, accrual, ledger, amount, method):
        with pytest.raises(InvalidShare):
            await accrual.record_payment_fee(ledger.project_id, amount, method, ACTOR)

    @pytest.mark.asyncio
    async def test_failed_log_insert_leaves_pool_unchanged(
        self, accrual, store, ledger, monkeypatch
    ):
        async def failing_insert(model, rows):
            raise LedgerStoreError("insert", model.__tablename__, "database is locked")

        monkeypatch.setattr(store, "insert", failing_insert)

        with pytest.raises(LedgerStoreError):
            await accrual.record_payment_fee(ledger.project_id, Decimal("500"), "cash", ACTOR)

        pool = await store.get_one(PercentagePool, id=ledger.cash_pool_id)
        assert pool.period_percentage == Decimal("600")
        assert pool.total_percentage == Decimal("600")

    @pytest.mark.asyncio
    async def test_fee_during_pool_reduction_is_kept(
        self, store, locks, ledger, session_factory, monkeypatch
    ):
        """A fee recorded from another session waits for the running distribution."""
        committer = DistributionCommitter(store, locks)
        real_get_pools = committer.selection_service.get_pools
        real_reduce_pools = committer._reduce_pools
        reducing = False
        fee_tasks = []
        finished_early = set()

        async def record_fee_elsewhere():
            async with session_factory() as other_session:
                service = PercentageAccrualService(LedgerStore(other_session), locks)
                return await service.record_payment_fee(
                    ledger.project_id, Decimal("1000"), "cash", Actor(id=8)
                )

        async def get_pools(project_id, currency):
            pools = await real_get_pools(project_id, currency)
            if reducing and not fee_tasks:
                fee_tasks.append(asyncio.create_task(record_fee_elsewhere()))
                done, _ = await asyncio.wait(fee_tasks, timeout=0.2)
                finished_early.update(done)
            return pools

        async def reduce_pools(ctx):
            nonlocal reducing
            reducing = True
            await real_reduce_pools(ctx)

        monkeypatch.setattr(committer.selection_service, "get_pools", get_pools)
        monkeypatch.setattr(committer, "_reduce_pools", reduce_pools)

        selection = await SelectionService(store).select_logs(ledger.project_id, ledger.log_ids)
        participants, company = _shares(ledger)
        result = await committer.commit(ledger.project_id, selection, participants, company, ACTOR)

        assert result.success, result.message
        assert not finished_early
        log = await fee_tasks[0]
        assert log.amount == Decimal("100")

        pool = await store.get_one(PercentagePool, id=ledger.cash_pool_id)
        # 600 - 300 distributed + 100 accrued
        assert pool.period_percentage == Decimal("400")
        assert pool.total_percentage == Decimal("700")


@pytest.fixture
async def payroll_entries(store, locks, ledger):
    """Pending payroll created by the end-to-end distribution (cash 180, bank 120)."""
    selection = await SelectionService(store).select_logs(ledger.project_id, ledger.log_ids)
    participants, company = _shares(ledger)
    result = await DistributionCommitter(store, locks).commit(
        ledger.project_id, selection, participants, company, ACTOR
    )
    assert result.success
    entries = await store.get(PayrollEntry, employee_id=ledger.employee_id)
    return {entry.payment_method: entry for entry in entries}


class TestPayrollApproval:
    @pytest.mark.asyncio
    async def test_accept_deducts_matching_leg(self, payroll, store, ledger, payroll_entries):
        accepted = await payroll.accept_payroll(payroll_entries["cash"].id, Actor(id=9))

        assert accepted.status == "accepted"
        assert accepted.approved_by == 9
        assert accepted.approved_at is not None
        account = await store.get_one(Account, id=ledger.employee_account_id)
        assert account.cash_balance == Decimal("0")
        assert account.bank_balance == Decimal("120")

    @pytest.mark.asyncio
    async def test_reject_leaves_balance(self, payroll, store, ledger, payroll_entries):
        rejected = await payroll.reject_payroll(payroll_entries["bank"].id, ACTOR)

        assert rejected.status == "rejected"
        account = await store.get_one(Account, id=ledger.employee_account_id)
        assert account.bank_balance == Decimal("120")
        assert [e.id for e in await payroll.list_pending(ledger.project_id)] == [
            payroll_entries["cash"].id
        ]

    @pytest.mark.asyncio
    async def test_only_pending_entries_change(self, payroll, payroll_entries):
        entry_id = payroll_entries["bank"].id
        await payroll.reject_payroll(entry_id, ACTOR)

        with pytest.raises(PayrollNotPending, match="rejected"):
            await payroll.accept_payroll(entry_id, ACTOR)

    @pytest.mark.asyncio
    async def test_unknown_entry(self, payroll, ledger):
        with pytest.raises(PayrollMissing):
            await payroll.reject_payroll(12345, ACTOR)

    @pytest.mark.asyncio
    async def test_accept_needs_account(self, payroll, store, ledger, payroll_entries):
        await store.update(Account, ledger.employee_account_id, {"currency": "USD"})

        with pytest.raises(AccountMissing):
            await payroll.accept_payroll(payroll_entries["cash"].id, ACTOR)

    @pytest.mark.asyncio
    async def test_failed_accept_can_be_retried_once(
        self, payroll, store, ledger, payroll_entries, monkeypatch
    ):
        real_update = store.update
        failures = []

        async def update_failing_once(model, target, patch):
            if model is PayrollEntry and not failures:
                failures.append(target)
                raise LedgerStoreError("update", model.__tablename__, "database is locked")
            return await real_update(model, target, patch)

        monkeypatch.setattr(store, "update", update_failing_once)
        entry_id = payroll_entries["cash"].id

        with pytest.raises(LedgerStoreError):
            await payroll.accept_payroll(entry_id, ACTOR)

        account = await store.get_one(Account, id=ledger.employee_account_id)
        assert account.cash_balance == Decimal("180")
        assert (await store.get_one(PayrollEntry, id=entry_id)).status == "pending"

        accepted = await payroll.accept_payroll(entry_id, ACTOR)

        assert accepted.status == "accepted"
        account = await store.get_one(Account, id=ledger.employee_account_id)
        assert account.cash_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_entry_decided_elsewhere_is_not_paid(
        self, payroll, store, ledger, payroll_entries, monkeypatch
    ):
        real_get_pending = payroll._get_pending

        async def get_pending_then_reject(payroll_id):
            entry = await real_get_pending(payroll_id)
            await store.update(PayrollEntry, payroll_id, {"status": "rejected"})
            return entry

        monkeypatch.setattr(payroll, "_get_pending", get_pending_then_reject)

        with pytest.raises(PayrollNotPending, match="rejected"):
            await payroll.accept_payroll(payroll_entries["cash"].id, ACTOR)

        account = await store.get_one(Account, id=ledger.employee_account_id)
        assert account.cash_balance == Decimal("180")
