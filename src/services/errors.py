"""Domain errors raised by the distribution engine.

Validation errors are raised before any ledger write and are safe to retry once
the input is fixed. Step-write errors mean some writes already landed and must
not be retried blindly.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Iterable


class Severity(str, Enum):
    """How loudly a failure must be surfaced to the caller."""

    ERROR = "error"
    CRITICAL = "critical"


class DistributionError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = 400,
        severity: Severity = Severity.ERROR,
        details: dict[str, Any] | None = None,
    ):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        self.severity = severity
        self.details = details or {}
        super().__init__(message)


class DistributionValidationError(DistributionError):
    """Input rejected before any write."""


class SelectionEmpty(DistributionValidationError):
    """No log ids were submitted."""

    def __init__(self, message: str = "Select at least one percentage log"):
        super().__init__(message, "selection_empty", 422)


class SelectionStale(DistributionValidationError):
    """Requested logs are missing, foreign, or already distributed."""

    def __init__(self, missing_ids: Iterable[int], distributed_ids: Iterable[int]):
        self.missing_ids = sorted(missing_ids)
        self.distributed_ids = sorted(distributed_ids)
        parts = []
        if self.missing_ids:
            parts.append(f"not found in project: {self.missing_ids}")
        if self.distributed_ids:
            parts.append(f"already distributed: {self.distributed_ids}")
        super().__init__(
            "Selected logs are stale (" + "; ".join(parts) + ")",
            "selection_stale",
            409,
            details={"missing_ids": self.missing_ids, "distributed_ids": self.distributed_ids},
        )


class SelectionExceedsPool(DistributionValidationError):
    """Selected revenue is larger than what the pools hold."""

    def __init__(self, selected_total: Decimal, total_pool: Decimal):
        self.selected_total = selected_total
        self.total_pool = total_pool
        super().__init__(
            f"Selected total {selected_total} exceeds available pool {total_pool}",
            "selection_exceeds_pool",
            422,
            details={"selected_total": str(selected_total), "total_pool": str(total_pool)},
        )


class PartitionIncomplete(DistributionValidationError):
    """Participant percentages do not add up to exactly 100."""

    def __init__(self, deviation: Decimal, item_index: int | None = None):
        self.deviation = deviation
        self.item_index = item_index
        scope = f"map item {item_index}" if item_index is not None else "distribution"
        sign = "+" if deviation > 0 else ""
        super().__init__(
            f"Percentages for {scope} must total 100 (deviation {sign}{deviation})",
            "partition_incomplete",
            422,
            details={"deviation": str(deviation), "item_index": item_index},
        )


class InvalidShare(DistributionValidationError):
    """A participant share is out of range or duplicated."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_share", 422)


class AccountMissing(DistributionValidationError):
    """A participant has no account to receive money."""

    def __init__(self, employee_ids: Iterable[int] = (), company_purposes: Iterable[str] = ()):
        self.employee_ids = sorted(employee_ids)
        self.company_purposes = sorted(company_purposes)
        parts = []
        if self.employee_ids:
            parts.append(f"employees {self.employee_ids}")
        if self.company_purposes:
            parts.append(f"company {self.company_purposes}")
        super().__init__(
            "Missing accounts for " + ", ".join(parts),
            "account_missing",
            422,
            details={"employee_ids": self.employee_ids, "company_purposes": self.company_purposes},
        )


class PoolMissing(DistributionValidationError):
    """Project has no percentage pool or balance row for the requested leg."""

    def __init__(self, message: str):
        super().__init__(message, "pool_missing", 404)


class ProjectMissing(DistributionValidationError):
    """Project id does not exist."""

    def __init__(self, project_id: int):
        super().__init__(f"Project {project_id} not found", "project_missing", 404)


class RunIncomplete(DistributionValidationError):
    """A run with the same key started before and did not complete."""

    def __init__(self, run_key: str, status: str, last_completed_step: str | None):
        self.run_key = run_key
        super().__init__(
            f"Run {run_key!r} is {status} (last completed step: {last_completed_step or 'none'}); "
            "reconcile manually before retrying",
            "run_incomplete",
            409,
            severity=Severity.CRITICAL,
            details={"run_key": run_key, "status": status, "last_completed_step": last_completed_step},
        )


class PayrollMissing(DistributionValidationError):
    """Payroll entry does not exist."""

    def __init__(self, payroll_id: int):
        super().__init__(f"Payroll entry {payroll_id} not found", "payroll_missing", 404)


class PayrollNotPending(DistributionValidationError):
    """Payroll entry was already accepted or rejected."""

    def __init__(self, payroll_id: int, status: str):
        super().__init__(
            f"Payroll entry {payroll_id} is {status}, only pending entries can change",
            "payroll_not_pending",
            409,
        )


class LedgerStoreError(DistributionError):
    """A single ledger store call failed."""

    def __init__(self, operation: str, table: str, reason: str):
        self.operation = operation
        self.table = table
        super().__init__(
            f"Ledger {operation} on {table} failed: {reason}",
            "ledger_store_error",
            500,
        )


class StepWriteError(DistributionError):
    """A write step of a commit failed; earlier steps stay applied."""

    def __init__(
        self,
        failed_step: str,
        completed_steps: list[str],
        reason: str,
        code: str = "step_write_failed",
        severity: Severity = Severity.ERROR,
        message: str | None = None,
        http_status: int = 500,
    ):
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        super().__init__(
            message or f"Step {failed_step!r} failed: {reason}",
            code,
            http_status,
            severity=severity,
            details={"failed_step": failed_step, "completed_steps": self.completed_steps},
        )


class PartialSuccessError(StepWriteError):
    """Periods and items were written but the logs were not marked distributed."""

    def __init__(self, failed_step: str, completed_steps: list[str], reason: str):
        super().__init__(
            failed_step,
            completed_steps,
            reason,
            code="partial_success",
            severity=Severity.CRITICAL,
            message=(
                "Distribution periods were recorded but the selected logs could not be "
                f"marked as distributed ({reason}). Do NOT retry: reconcile the logs "
                "manually or they may be distributed twice."
            ),
        )


class CommitCancelled(StepWriteError):
    """The caller cancelled the run between two steps."""

    def __init__(self, next_step: str, completed_steps: list[str]):
        super().__init__(
            next_step,
            completed_steps,
            "cancelled",
            code="commit_cancelled",
            severity=Severity.CRITICAL if completed_steps else Severity.ERROR,
            message=f"Run cancelled before step {next_step!r}; completed steps stay applied",
            http_status=409,
        )


__all__ = [
    "AccountMissing",
    "CommitCancelled",
    "DistributionError",
    "DistributionValidationError",
    "InvalidShare",
    "LedgerStoreError",
    "PartialSuccessError",
    "PartitionIncomplete",
    "PayrollMissing",
    "PayrollNotPending",
    "PoolMissing",
    "ProjectMissing",
    "RunIncomplete",
    "SelectionEmpty",
    "SelectionExceedsPool",
    "SelectionStale",
    "Severity",
    "StepWriteError",
]
