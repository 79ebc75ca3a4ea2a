"""Audit service for logging distribution and payroll events."""

from src.models.audit_log import AuditLog
from src.services.ledger_store import LedgerStore


class AuditService:
    """Service for audit log operations.

    Provides static method to create minimal audit log entries.
    """

    @staticmethod
    async def log(
        store: LedgerStore,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Create audit log entry (one-liner).

        Args:
            store: Ledger store to write through
            entity_type: Type of entity ("distribution", "payroll", etc.)
            entity_id: Primary key of the entity
            action: Action performed ("commit", "fail", "accept", etc.)
            actor_id: User who performed the action (optional)
            changes: Optional JSON snapshot of changed fields

        Returns:
            Created AuditLog object
        """
        return await store.insert(
            AuditLog,
            {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "actor_id": actor_id,
                "changes": changes,
            },
        )


__all__ = ["AuditService"]
