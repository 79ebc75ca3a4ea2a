"""Pytest configuration: in-memory ledger database and seeded projects."""

import os

# Set test database URL BEFORE any imports from src
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from dataclasses import dataclass, field  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.models import (  # noqa: E402
    Account,
    AccountPurpose,
    AccountType,
    Base,
    Employee,
    MapType,
    PercentageLog,
    PercentagePool,
    Project,
    ProjectBalance,
)
from src.services.config import reset_settings  # noqa: E402
from src.services.ledger_runner import ProjectLockRegistry  # noqa: E402
from src.services.ledger_store import LedgerStore  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
async def session_factory():
    """Session factory over a fresh in-memory SQLite database shared by its sessions."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def session(session_factory):
    """Async session over the test database."""
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def store(session):
    return LedgerStore(session)


@pytest.fixture
def locks():
    """Lock registry private to one test (locks bind to the running loop)."""
    return ProjectLockRegistry()


@dataclass
class SeededLedger:
    """Ids of the rows created by the ``ledger`` fixture."""

    project_id: int
    employee_id: int
    second_employee_id: int
    log_ids: list[int]
    cash_pool_id: int
    bank_pool_id: int
    employee_account_id: int
    second_employee_account_id: int
    company_accounts: dict[str, int] = field(default_factory=dict)
    map_type_ids: list[int] = field(default_factory=list)


@pytest.fixture
async def ledger(session) -> SeededLedger:
    """Project with cash pool 600, bank pool 400 and undistributed logs of 300 and 200.

    Two employees with LYD main accounts; the company has main, discount
    and held accounts. The project balance is 1000.
    """
    project = Project(name="Tripoli Tower", code="TT-01")
    alice = Employee(first_name="Alice", last_name="Haddad")
    omar = Employee(first_name="Omar", last_name="Salem")
    session.add_all([project, alice, omar])
    await session.commit()

    cash_pool = PercentagePool(
        project_id=project.id,
        currency="LYD",
        type="cash",
        percentage=Decimal("10"),
        period_percentage=Decimal("600"),
        total_percentage=Decimal("600"),
    )
    bank_pool = PercentagePool(
        project_id=project.id,
        currency="LYD",
        type="bank",
        percentage=Decimal("10"),
        period_percentage=Decimal("400"),
        total_percentage=Decimal("400"),
    )
    logs = [
        PercentageLog(project_id=project.id, amount=Decimal("300"), percentage=Decimal("10")),
        PercentageLog(project_id=project.id, amount=Decimal("200"), percentage=Decimal("10")),
    ]
    alice_account = Account(
        account_type=AccountType.EMPLOYEE.value,
        purpose=AccountPurpose.MAIN.value,
        employee_id=alice.id,
        currency="LYD",
    )
    omar_account = Account(
        account_type=AccountType.EMPLOYEE.value,
        purpose=AccountPurpose.MAIN.value,
        employee_id=omar.id,
        currency="LYD",
    )
    company_accounts = [
        Account(account_type=AccountType.COMPANY.value, purpose=purpose.value, currency="LYD")
        for purpose in AccountPurpose
    ]
    balance = ProjectBalance(project_id=project.id, currency="LYD", balance=Decimal("1000"))
    map_types = [MapType(name="Site plan"), MapType(name="Survey")]
    session.add_all(
        [cash_pool, bank_pool, *logs, alice_account, omar_account, *company_accounts, balance, *map_types]
    )
    await session.commit()

    return SeededLedger(
        project_id=project.id,
        employee_id=alice.id,
        second_employee_id=omar.id,
        log_ids=[log.id for log in logs],
        cash_pool_id=cash_pool.id,
        bank_pool_id=bank_pool.id,
        employee_account_id=alice_account.id,
        second_employee_account_id=omar_account.id,
        company_accounts={account.purpose: account.id for account in company_accounts},
        map_type_ids=[map_type.id for map_type in map_types],
    )
