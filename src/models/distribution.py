"""Percentage distribution ORM models.

Periods, line items, held and discount records are append-only evidence of a
distribution run. ``DistributionRun`` tracks the progress of a run so that a
retried commit with the same key can be detected.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class FundType(str, Enum):
    """Fund leg of a distribution."""

    BANK = "bank"
    CASH = "cash"


class ParticipantType(str, Enum):
    """Who receives a line item."""

    EMPLOYEE = "employee"
    COMPANY = "company"


class RunStatus(str, Enum):
    """Lifecycle of a distribution run."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class DistributionRun(Base, BaseModel):
    """Progress record for one commit of a percentage or maps distribution."""

    __tablename__ = "distribution_runs"

    run_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, comment="'percentage' or 'maps'")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RunStatus.IN_PROGRESS.value
    )
    last_completed_step: Mapped[str | None] = mapped_column(String(50), nullable=True)
    failed_step: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_by: Mapped[int | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<DistributionRun(key={self.run_key!r}, kind={self.kind}, status={self.status})>"


class DistributionPeriod(Base, BaseModel):
    """Snapshot of one fund leg of a distribution run."""

    __tablename__ = "distribution_periods"

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    run_id: Mapped[int | None] = mapped_column(ForeignKey("distribution_runs.id"), nullable=True)
    created_by: Mapped[int | None] = mapped_column(nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False, comment="'bank' or 'cash'")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="LYD")

    items: Mapped[list["PeriodLineItem"]] = relationship(
        "PeriodLineItem", back_populates="period", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<DistributionPeriod(id={self.id}, project_id={self.project_id}, type={self.type}, "
            f"total={self.total_amount})>"
        )


class PeriodLineItem(Base, BaseModel):
    """One participant's share within a distribution period."""

    __tablename__ = "period_line_items"

    period_id: Mapped[int] = mapped_column(
        ForeignKey("distribution_periods.id"), nullable=False, index=True
    )
    participant_type: Mapped[str] = mapped_column(String(20), nullable=False)
    employee_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id"), nullable=True)
    bank_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    cash_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    bank_held: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    cash_held: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    period: Mapped["DistributionPeriod"] = relationship("DistributionPeriod", back_populates="items")

    __table_args__ = (Index("idx_line_item_period_employee", "period_id", "employee_id"),)


class HeldRecord(Base, BaseModel):
    """Amount withheld from an employee's payable in a period."""

    __tablename__ = "held_records"

    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=False, index=True)
    period_id: Mapped[int] = mapped_column(ForeignKey("distribution_periods.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)


class EmployeeDiscount(Base, BaseModel):
    """Discount applied to an employee in a period."""

    __tablename__ = "employee_discounts"

    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=False, index=True)
    period_id: Mapped[int] = mapped_column(ForeignKey("distribution_periods.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)


class CompanyDiscount(Base, BaseModel):
    """Discount applied to the company's own share in a period."""

    __tablename__ = "company_discounts"

    period_id: Mapped[int] = mapped_column(ForeignKey("distribution_periods.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)


__all__ = [
    "CompanyDiscount",
    "DistributionPeriod",
    "DistributionRun",
    "EmployeeDiscount",
    "FundType",
    "HeldRecord",
    "ParticipantType",
    "PeriodLineItem",
    "RunStatus",
]
