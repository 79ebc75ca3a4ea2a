"""Maps distribution ORM models."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class MapType(Base, BaseModel):
    """Catalog of survey/drawing map kinds sold per project."""

    __tablename__ = "map_types"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)


class MapsDistribution(Base, BaseModel):
    """Header of one maps distribution run."""

    __tablename__ = "maps_distributions"

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("project_expenses.id"), nullable=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="LYD")
    created_by: Mapped[int | None] = mapped_column(nullable=True)

    items: Mapped[list["MapsDistributionItem"]] = relationship(
        "MapsDistributionItem", back_populates="distribution", cascade="all, delete-orphan"
    )


class MapsDistributionItem(Base, BaseModel):
    """One map line (price x quantity) of a maps distribution."""

    __tablename__ = "maps_distribution_items"

    distribution_id: Mapped[int] = mapped_column(
        ForeignKey("maps_distributions.id"), nullable=False, index=True
    )
    map_type_id: Mapped[int] = mapped_column(ForeignKey("map_types.id"), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    distribution: Mapped["MapsDistribution"] = relationship(
        "MapsDistribution", back_populates="items"
    )
    details: Mapped[list["MapsDistributionDetail"]] = relationship(
        "MapsDistributionDetail", back_populates="item", cascade="all, delete-orphan"
    )


class MapsDistributionDetail(Base, BaseModel):
    """A participant's share of one map line."""

    __tablename__ = "maps_distribution_details"

    item_id: Mapped[int] = mapped_column(
        ForeignKey("maps_distribution_items.id"), nullable=False, index=True
    )
    participant_type: Mapped[str] = mapped_column(String(20), nullable=False)
    employee_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id"), nullable=True)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    item: Mapped["MapsDistributionItem"] = relationship(
        "MapsDistributionItem", back_populates="details"
    )


__all__ = ["MapType", "MapsDistribution", "MapsDistributionItem", "MapsDistributionDetail"]
