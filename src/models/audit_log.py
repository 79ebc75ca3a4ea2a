"""Audit log model for tracking distribution and payroll events."""

from typing import Any

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """Audit log entry for tracking changes to key entities.

    Records who (actor_id) did what (action) to which entity (entity_type, entity_id)
    and optional field snapshots (changes).
    """

    __tablename__ = "audit_logs"

    entity_type: Mapped[str] = mapped_column(index=False)
    """Entity type being audited: "distribution", "maps_distribution", "payroll"."""

    entity_id: Mapped[int] = mapped_column(index=False)
    """Primary key of the entity being audited (project id for distributions)."""

    action: Mapped[str] = mapped_column(index=False)
    """Action performed: "commit", "fail", "accept", "reject"."""

    actor_id: Mapped[int | None] = mapped_column(nullable=True, index=False)
    """User who performed the action. None for system actions."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True, index=False)
    """Optional JSON snapshot: {"selected_total": "500.00", "log_count": 2}."""

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, entity_type={self.entity_type}, entity_id={self.entity_id}, "
            f"action={self.action}, actor_id={self.actor_id}, created_at={self.created_at})>"
        )


__all__ = ["AuditLog"]
