"""
Execution of a reconcile plan against the question store.

Phase 1 runs creates and updates (bounded concurrency, sequential by
default); phase 2 runs deletes once phase 1 has finished. Each storage call
has its own timeout. A failing member is logged and counted; the others
still run and nothing is rolled back.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, TypeVar

from loguru import logger

from config import get_settings

from .errors import PartialBatchFailure, StaleSnapshotError, StorageTimeout
from .models import FlatQuestionRecord
from .reconciler import CreateOp, DeleteOp, ReconcilePlan, UpdateOp

if TYPE_CHECKING:
    from src.storage.base import QuestionStore

T = TypeVar("T")

OperationKind = Literal["create", "update", "delete"]


@dataclass
class OperationResult:
    """Outcome of one member operation."""

    kind: OperationKind
    record_id: str | None
    target_index: int | None = None
    ok: bool = True
    code: str | None = None
    error: str | None = None


@dataclass
class ReconcileOutcome:
    """Tally of a plan execution."""

    results: list[OperationResult] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def failures(self) -> list[OperationResult]:
        return [r for r in self.results if not r.ok]

    @property
    def created_ids(self) -> list[str]:
        return [r.record_id for r in self.results if r.kind == "create" and r.ok]

    def count(self, kind: OperationKind, ok: bool = True) -> int:
        return sum(1 for r in self.results if r.kind == kind and r.ok is ok)

    def raise_for_failures(self) -> None:
        """Raise PartialBatchFailure if any member operation failed."""
        if self.failure_count:
            raise PartialBatchFailure(self)


class ReconcileExecutor:
    """Applies ReconcilePlans through a QuestionStore."""

    def __init__(
        self,
        store: QuestionStore,
        timeout: float | None = None,
        max_concurrency: int | None = None,
        check_stale: bool | None = None,
    ):
        defaults = get_settings().get_reconcile_config()
        self.store = store
        self.timeout = timeout if timeout is not None else defaults["timeout"]
        self.max_concurrency = max(
            1, max_concurrency if max_concurrency is not None else defaults["max_concurrency"]
        )
        self.check_stale = check_stale if check_stale is not None else defaults["check_stale"]

    async def apply(self, plan: ReconcilePlan) -> ReconcileOutcome:
        """
        Execute a plan.

        Raises:
            StaleSnapshotError: A member changed since the group was loaded
                (checked before any write)
        """
        if self.check_stale:
            await self.ensure_fresh(
                [op.previous for op in plan.updates] + [op.previous for op in plan.deletes]
            )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcome = ReconcileOutcome(unchanged=list(plan.unchanged))

        phase_one = [self._create(op) for op in plan.creates] + [
            self._update(op) for op in plan.updates
        ]
        outcome.results.extend(await self._gather(semaphore, phase_one))

        # Deletes only start after every create/update has settled
        phase_two = [self._delete(op) for op in plan.deletes]
        outcome.results.extend(await self._gather(semaphore, phase_two))

        logger.info(
            "Applied plan: {} ok, {} failed, {} unchanged",
            outcome.success_count,
            outcome.failure_count,
            len(outcome.unchanged),
        )
        return outcome

    async def ensure_fresh(self, members: list[FlatQuestionRecord]) -> None:
        """Raise StaleSnapshotError if any member's version moved on or it vanished."""
        ids = [m.id for m in members if m.id]
        if not ids:
            return
        current = {r.id: r for r in await self._timed(self.store.get_records(ids))}
        stale = [
            m.id
            for m in members
            if m.id and (m.id not in current or current[m.id].version != m.version)
        ]
        if stale:
            logger.warning("Refusing stale plan, changed members: {}", stale)
            raise StaleSnapshotError(stale)

    # ========================================
    # Member operations
    # ========================================

    async def _gather(
        self,
        semaphore: asyncio.Semaphore,
        operations: list[Callable[[], Awaitable[OperationResult]]],
    ) -> list[OperationResult]:
        async def guarded(operation):
            async with semaphore:
                return await operation()

        return list(await asyncio.gather(*(guarded(op) for op in operations)))

    async def _timed(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise StorageTimeout(f"Timed out after {self.timeout}s") from None

    async def _run(
        self,
        kind: OperationKind,
        record_id: str | None,
        target_index: int | None,
        call: Callable[[], Awaitable[OperationResult]],
    ) -> OperationResult:
        try:
            return await call()
        except StorageTimeout as exc:
            logger.error("{} of {} timed out after {}s", kind, record_id or "new record", self.timeout)
            error = str(exc)
        except Exception as exc:  # Member failures are tallied, not raised
            logger.error("{} of {} failed: {}", kind, record_id or "new record", exc)
            error = str(exc) or exc.__class__.__name__
        return OperationResult(
            kind=kind, record_id=record_id, target_index=target_index, ok=False, error=error
        )

    def _create(self, op: CreateOp) -> Callable[[], Awaitable[OperationResult]]:
        async def call() -> OperationResult:
            shape = op.target.shape
            fields = {**shape.content_fields(), **shape.metadata_fields()}
            if shape.created_by:
                fields["createdBy"] = shape.created_by
            created = await self._timed(self.store.create_record(fields))
            logger.debug("Created question {} ({})", created.id, created.code)
            return OperationResult(
                kind="create", record_id=created.id, target_index=op.target_index, code=created.code
            )

        return lambda: self._run("create", None, op.target_index, call)

    def _update(self, op: UpdateOp) -> Callable[[], Awaitable[OperationResult]]:
        async def call() -> OperationResult:
            fields = dict(op.changes)
            code = None
            if op.regenerate_code:
                code = await self._timed(self.store.generate_code(*op.target.shape.code_axes()))
                fields["code"] = code
            await self._timed(
                self.store.update_record(op.record_id, fields, expected_version=op.previous.version)
            )
            logger.debug("Updated question {} ({} field(s))", op.record_id, len(fields))
            return OperationResult(
                kind="update", record_id=op.record_id, target_index=op.target_index, code=code
            )

        return lambda: self._run("update", op.record_id, op.target_index, call)

    def _delete(self, op: DeleteOp) -> Callable[[], Awaitable[OperationResult]]:
        async def call() -> OperationResult:
            await self._timed(self.store.delete_record(op.record_id))
            logger.debug("Deleted question {}", op.record_id)
            return OperationResult(kind="delete", record_id=op.record_id)

        return lambda: self._run("delete", op.record_id, None, call)
