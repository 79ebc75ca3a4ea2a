"""Account ORM model for employee and company balances."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class AccountType(str, Enum):
    """Account owner classification."""

    EMPLOYEE = "employee"
    """Personal account linked to an Employee (one per currency)."""

    COMPANY = "company"
    """Company-owned account (no Employee link)."""


class AccountPurpose(str, Enum):
    """What a company account collects."""

    MAIN = "main"
    DISCOUNT = "discount"
    HELD = "held"


class Account(Base, BaseModel):
    """Running bank/cash balances for an employee or the company.

    Distributions only ever increase these balances; payroll approval
    decreases them when money is actually paid out.
    """

    __tablename__ = "accounts"

    account_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AccountType.EMPLOYEE.value,
        comment="'employee' or 'company'",
    )
    purpose: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AccountPurpose.MAIN.value,
        comment="'main', 'discount' or 'held'",
    )
    employee_id: Mapped[int | None] = mapped_column(
        ForeignKey("employees.id"),
        nullable=True,
        index=True,
        comment="FK to Employee if account_type='employee'",
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="LYD")

    bank_balance: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    cash_balance: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    bank_held: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    cash_held: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    employee: Mapped["Employee | None"] = relationship(  # noqa: F821
        "Employee",
        foreign_keys=[employee_id],
        back_populates="accounts",
    )

    __table_args__ = (
        Index("idx_account_type_purpose", "account_type", "purpose", "currency"),
        Index("idx_account_employee_currency", "employee_id", "currency"),
    )

    def __repr__(self) -> str:
        return (
            f"<Account(id={self.id}, type={self.account_type}, purpose={self.purpose}, "
            f"employee_id={self.employee_id})>"
        )


__all__ = ["Account", "AccountType", "AccountPurpose"]
