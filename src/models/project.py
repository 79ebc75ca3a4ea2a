"""Project ORM models: project header, currency balances, percentage pools and logs."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class Project(Base, BaseModel):
    """Construction project owned by the company.

    Counters are advanced by expense and maps operations; serial numbers of
    new expenses are derived from ``expense_counter``.
    """

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Project name")
    code: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)
    serial_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    expense_counter: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of expenses recorded"
    )
    map_counter: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Number of maps distributions recorded"
    )

    balances: Mapped[list["ProjectBalance"]] = relationship(
        "ProjectBalance", back_populates="project", cascade="all, delete-orphan"
    )
    pools: Mapped[list["PercentagePool"]] = relationship(
        "PercentagePool", back_populates="project", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name!r}, code={self.code!r})>"


class ProjectBalance(Base, BaseModel):
    """Available project money per currency."""

    __tablename__ = "project_balances"

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="LYD")
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    held: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    project: Mapped["Project"] = relationship("Project", back_populates="balances")

    __table_args__ = (
        Index("idx_project_balance_currency", "project_id", "currency", unique=True),
    )

    def __repr__(self) -> str:
        return (
            f"<ProjectBalance(project_id={self.project_id}, currency={self.currency}, "
            f"balance={self.balance})>"
        )


class PercentagePool(Base, BaseModel):
    """Undistributed company percentage per project, currency and fund type.

    ``period_percentage`` is the pool balance consumed by distributions;
    ``total_percentage`` accumulates every fee ever accrued.
    """

    __tablename__ = "project_percentage"

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="LYD")
    type: Mapped[str] = mapped_column(String(10), nullable=False, comment="'cash' or 'bank'")
    percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0"), comment="Company fee rate"
    )
    period_percentage: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    total_percentage: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    project: Mapped["Project"] = relationship("Project", back_populates="pools")

    __table_args__ = (
        Index("idx_pool_project_currency_type", "project_id", "currency", "type", unique=True),
    )

    def __repr__(self) -> str:
        return (
            f"<PercentagePool(project_id={self.project_id}, currency={self.currency}, "
            f"type={self.type}, period_percentage={self.period_percentage})>"
        )


class PercentageLog(Base, BaseModel):
    """Revenue earmarked for percentage distribution.

    Consumed at most once: after ``distributed`` flips to true the row is
    never selected or mutated again.
    """

    __tablename__ = "project_percentage_logs"

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    distributed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("project_expenses.id"), nullable=True
    )
    payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("expense_payments.id"), nullable=True
    )

    __table_args__ = (Index("idx_percentage_log_project_distributed", "project_id", "distributed"),)

    def __repr__(self) -> str:
        return (
            f"<PercentageLog(id={self.id}, project_id={self.project_id}, amount={self.amount}, "
            f"distributed={self.distributed})>"
        )


__all__ = ["Project", "ProjectBalance", "PercentagePool", "PercentageLog"]
