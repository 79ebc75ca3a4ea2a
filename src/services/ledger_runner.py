"""Sequential multi-step ledger writes without a database transaction.

A run acquires the project's lock, registers itself in ``distribution_runs``
under a run key, then executes its steps strictly in order. Each finished step
is recorded on the run row, so a crash leaves a run whose last completed step
says exactly how far the books got. A failing step stops the run; nothing is
rolled back or retried.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from src.models.distribution import DistributionRun, RunStatus
from src.services.audit_service import AuditService
from src.services.errors import (
    CommitCancelled,
    DistributionError,
    PartialSuccessError,
    RunIncomplete,
    StepWriteError,
)
from src.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class ProjectLockRegistry:
    """One asyncio.Lock per project id.

    Runs for the same project are serialized; runs for different projects do
    not wait on each other. Locks are process-local: several server processes
    writing the same project still need an external advisory lock.
    """

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}

    def lock_for(self, project_id: int) -> asyncio.Lock:
        return self._locks.setdefault(project_id, asyncio.Lock())

    def is_locked(self, project_id: int) -> bool:
        lock = self._locks.get(project_id)
        return lock is not None and lock.locked()


# Shared by every committer in the process
project_locks = ProjectLockRegistry()


@dataclass
class RunContext:
    """State threaded through the steps of one run."""

    project_id: int
    actor_id: int | None
    run: DistributionRun | None = None
    completed_steps: list[str] = field(default_factory=list)

    @property
    def run_key(self) -> str | None:
        return self.run.run_key if self.run else None


Step = tuple[Enum, Callable[[Any], Awaitable[None]]]


class LedgerRunner:
    """Base for committers that write a fixed sequence of ledger steps."""

    kind: str = "run"
    audit_entity: str = "distribution"

    def __init__(self, store: LedgerStore, locks: ProjectLockRegistry | None = None):
        """Initialize with ledger store and lock registry (process-wide by default)."""
        self.store = store
        self.locks = locks or project_locks

    async def find_completed_run(self, run_key: str | None) -> DistributionRun | None:
        """Return the completed run for ``run_key``.

        Raises:
            RunIncomplete: A run with this key exists but never completed
        """
        if run_key is None:
            return None
        existing = await self.store.get_one(DistributionRun, run_key=run_key)
        if existing is None:
            return None
        if existing.status != RunStatus.COMPLETED.value:
            raise RunIncomplete(run_key, existing.status, existing.last_completed_step)
        return existing

    async def begin_run(self, ctx: RunContext, run_key: str | None) -> None:
        ctx.run = await self.store.insert(
            DistributionRun,
            {
                "run_key": run_key or uuid.uuid4().hex,
                "project_id": ctx.project_id,
                "kind": self.kind,
                "status": RunStatus.IN_PROGRESS.value,
                "created_by": ctx.actor_id,
            },
        )
        logger.info("Started %s run %s for project %d", self.kind, ctx.run_key, ctx.project_id)

    async def run_steps(
        self,
        ctx: RunContext,
        steps: Sequence[Step],
        cancel_event: asyncio.Event | None = None,
        partial_success_steps: frozenset = frozenset(),
    ) -> None:
        """Execute steps in order, stopping at the first failure.

        Args:
            ctx: Run context passed to every step
            steps: (step name, coroutine function) pairs
            cancel_event: When set, no further step is issued
            partial_success_steps: Steps whose failure needs manual reconciliation

        Raises:
            CommitCancelled: cancel_event was set between two steps
            PartialSuccessError: A step in partial_success_steps failed
            StepWriteError: Any other step failed
        """
        for step, handler in steps:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Run %s cancelled before %s", ctx.run_key, step.value)
                raise CommitCancelled(step.value, ctx.completed_steps)

            logger.info("Run %s: %s", ctx.run_key, step.value)
            try:
                await handler(ctx)
            except Exception as exc:
                reason = exc.message if isinstance(exc, DistributionError) else str(exc)
                if step in partial_success_steps:
                    logger.critical(
                        "Run %s: %s failed after %s - manual reconciliation required: %s",
                        ctx.run_key,
                        step.value,
                        ctx.completed_steps,
                        reason,
                    )
                    raise PartialSuccessError(step.value, ctx.completed_steps, reason) from exc
                logger.error("Run %s: %s failed: %s", ctx.run_key, step.value, reason, exc_info=True)
                raise StepWriteError(step.value, ctx.completed_steps, reason) from exc

            ctx.completed_steps.append(step.value)
            await self._record_progress(ctx, {"last_completed_step": step.value})

    async def complete_run(self, ctx: RunContext, changes: dict[str, Any]) -> None:
        await self._record_progress(ctx, {"status": RunStatus.COMPLETED.value})
        await self._audit(ctx, "commit", {"run_key": ctx.run_key, **changes})
        logger.info("Completed %s run %s for project %d", self.kind, ctx.run_key, ctx.project_id)

    async def fail_run(self, ctx: RunContext, error: StepWriteError) -> None:
        await self._record_progress(
            ctx, {"status": RunStatus.FAILED.value, "failed_step": error.failed_step}
        )
        await self._audit(
            ctx,
            "fail",
            {
                "run_key": ctx.run_key,
                "failed_step": error.failed_step,
                "completed_steps": error.completed_steps,
                "code": error.code,
            },
        )

    async def _record_progress(self, ctx: RunContext, patch: dict[str, Any]) -> None:
        if ctx.run is None:
            return
        try:
            await self.store.update(DistributionRun, ctx.run.id, patch)
        except DistributionError as exc:
            logger.error("Could not record progress %s on run %s: %s", patch, ctx.run_key, exc.message)

    async def _audit(self, ctx: RunContext, action: str, changes: dict[str, Any]) -> None:
        try:
            await AuditService.log(
                self.store, self.audit_entity, ctx.project_id, action, ctx.actor_id, changes
            )
        except DistributionError as exc:
            logger.error("Could not write audit log for run %s: %s", ctx.run_key, exc.message)


__all__ = ["LedgerRunner", "ProjectLockRegistry", "RunContext", "project_locks"]
