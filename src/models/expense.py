"""Project expense and expense payment ORM models."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class ProjectExpense(Base, BaseModel):
    """Expense charged to a project."""

    __tablename__ = "project_expenses"

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    expense_type: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="LYD")
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    serial_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[int | None] = mapped_column(nullable=True)

    payments: Mapped[list["ExpensePayment"]] = relationship(
        "ExpensePayment", back_populates="expense", cascade="all, delete-orphan"
    )


class ExpensePayment(Base, BaseModel):
    """Payment made against a project expense."""

    __tablename__ = "expense_payments"

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("project_expenses.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    serial_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_by: Mapped[int | None] = mapped_column(nullable=True)

    expense: Mapped["ProjectExpense"] = relationship("ProjectExpense", back_populates="payments")


__all__ = ["ProjectExpense", "ExpensePayment"]
