"""Payroll ORM model."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class PayrollStatus(str, Enum):
    """Payroll entry status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PayrollEntry(Base, BaseModel):
    """Amount owed to an employee for one payment method.

    Created as ``pending`` by distributions; accepted or rejected later.
    """

    __tablename__ = "payroll"

    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=False, index=True)
    project_id: Mapped[int | None] = mapped_column(ForeignKey("projects.id"), nullable=True)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    basic_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    percentage_salary: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayrollStatus.PENDING.value
    )
    created_by: Mapped[int | None] = mapped_column(nullable=True)
    approved_by: Mapped[int | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_payroll_status", "status"),)

    def __repr__(self) -> str:
        return (
            f"<PayrollEntry(id={self.id}, employee_id={self.employee_id}, "
            f"total={self.total_salary}, method={self.payment_method}, status={self.status})>"
        )


__all__ = ["PayrollEntry", "PayrollStatus"]
