"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from src.models.account import Account, AccountPurpose, AccountType  # noqa: E402
from src.models.audit_log import AuditLog  # noqa: E402
from src.models.distribution import (  # noqa: E402
    CompanyDiscount,
    DistributionPeriod,
    DistributionRun,
    EmployeeDiscount,
    FundType,
    HeldRecord,
    ParticipantType,
    PeriodLineItem,
    RunStatus,
)
from src.models.employee import Employee  # noqa: E402
from src.models.expense import ExpensePayment, ProjectExpense  # noqa: E402
from src.models.maps import (  # noqa: E402
    MapsDistribution,
    MapsDistributionDetail,
    MapsDistributionItem,
    MapType,
)
from src.models.payroll import PayrollEntry, PayrollStatus  # noqa: E402
from src.models.project import (  # noqa: E402
    PercentageLog,
    PercentagePool,
    Project,
    ProjectBalance,
)

__all__ = [
    "Base",
    "BaseModel",
    "Account",
    "AccountPurpose",
    "AccountType",
    "AuditLog",
    "CompanyDiscount",
    "DistributionPeriod",
    "DistributionRun",
    "Employee",
    "EmployeeDiscount",
    "ExpensePayment",
    "FundType",
    "HeldRecord",
    "MapType",
    "MapsDistribution",
    "MapsDistributionDetail",
    "MapsDistributionItem",
    "ParticipantType",
    "PayrollEntry",
    "PayrollStatus",
    "PercentageLog",
    "PercentagePool",
    "PeriodLineItem",
    "Project",
    "ProjectBalance",
    "ProjectExpense",
    "RunStatus",
]
