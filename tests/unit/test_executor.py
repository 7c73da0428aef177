"""Tests for applying reconcile plans against a store."""

import asyncio
from dataclasses import replace

import pytest

from src.bank.decomposer import Decomposer
from src.bank.errors import PartialBatchFailure, StaleSnapshotError, StorageUnavailable
from src.bank.executor import ReconcileExecutor
from src.bank.models import Modality, TargetRecord
from src.bank.reconciler import DeleteOp, ReconcilePlan, reconcile
from src.storage.memory import InMemoryQuestionStore

PASSAGE = "Tom has a red bike. He rides it to school."


class RecordingStore(InMemoryQuestionStore):
    """Memory store that logs call order and can fail or stall on demand."""

    def __init__(self, records=None, fail_ids=(), delay=0.0):
        super().__init__(records)
        self.calls = []
        self.fail_ids = set(fail_ids)
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self, kind, record_id=None):
        self.calls.append((kind, record_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if record_id in self.fail_ids:
            raise StorageUnavailable(f"store down for {record_id}")

    async def create_record(self, fields):
        await self._enter("create")
        return await super().create_record(fields)

    async def update_record(self, record_id, fields, expected_version=None):
        await self._enter("update", record_id)
        await super().update_record(record_id, fields, expected_version)

    async def delete_record(self, record_id):
        await self._enter("delete", record_id)
        await super().delete_record(record_id)


def reading_records(make_record, count=3):
    return [
        make_record(
            f"r{i}",
            informative_text=PASSAGE,
            question_text=f"Question {i}",
            minute=i,
            modality=Modality.READING_COMPREHENSION,
        )
        for i in range(1, count + 1)
    ]


def mixed_plan(records, reading_draft):
    """Two creates, one update (records[0]) and deletes for the rest."""
    plan = reconcile(Decomposer().decompose(reading_draft), None)
    update_plan = reconcile(
        [plan.creates[0].target.with_shape(question_text="Edited")], records[:1]
    )
    plan.updates = update_plan.updates
    plan.deletes = [DeleteOp(previous=r) for r in records[1:]]
    return plan


@pytest.mark.asyncio
async def test_creates_assign_codes(reading_draft):
    store = InMemoryQuestionStore()
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=1, check_stale=True)

    outcome = await executor.apply(reconcile(Decomposer().decompose(reading_draft), None))

    assert outcome.success_count == 2
    assert len(outcome.created_ids) == 2
    assert sorted(r.code for r in outcome.results) == ["ENVO6F001", "ENVO6F002"]
    assert len(store) == 2


@pytest.mark.asyncio
async def test_update_bumps_version(make_record):
    records = reading_records(make_record, count=1)
    store = InMemoryQuestionStore(records)
    target = TargetRecord(shape=replace(records[0], question_text="Edited"), source_id="r1")
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=1, check_stale=True)

    outcome = await executor.apply(reconcile([target], records))

    stored = await store.get_record("r1")
    assert outcome.count("update") == 1
    assert stored.question_text == "Edited"
    assert stored.version == 2
    assert stored.code == records[0].code


@pytest.mark.asyncio
async def test_removed_members_are_deleted(make_record):
    records = reading_records(make_record, count=2)
    store = InMemoryQuestionStore(records)
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=1, check_stale=True)

    outcome = await executor.apply(reconcile([], records))

    assert outcome.count("delete") == 2
    assert len(store) == 0


@pytest.mark.asyncio
async def test_stale_snapshot_is_refused(make_record, reading_draft):
    records = reading_records(make_record)
    store = RecordingStore(records)
    await store.update_record("r2", {"questionText": "changed elsewhere"})
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=1, check_stale=True)

    with pytest.raises(StaleSnapshotError) as exc_info:
        await executor.apply(mixed_plan(records, reading_draft))

    assert exc_info.value.record_ids == ["r2"]
    assert store.calls == [("update", "r2")]


@pytest.mark.asyncio
async def test_stale_check_can_be_disabled(make_record, reading_draft):
    records = reading_records(make_record)
    store = RecordingStore(records)
    await store.update_record("r2", {"questionText": "changed elsewhere"})
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=1, check_stale=False)

    outcome = await executor.apply(mixed_plan(records, reading_draft))

    assert outcome.failure_count == 0


@pytest.mark.asyncio
async def test_failures_are_counted_not_raised(make_record, reading_draft):
    records = reading_records(make_record)
    store = RecordingStore(records, fail_ids={"r1", "r3"})
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=1, check_stale=True)

    outcome = await executor.apply(mixed_plan(records, reading_draft))

    # 2 creates + update r1 (fails) + delete r2 + delete r3 (fails)
    assert outcome.total == 5
    assert outcome.success_count == 3
    assert outcome.failure_count == 2
    assert {f.record_id for f in outcome.failures} == {"r1", "r3"}
    assert await store.get_record("r2") is None

    with pytest.raises(PartialBatchFailure) as exc_info:
        outcome.raise_for_failures()
    assert exc_info.value.success_count == 3
    assert exc_info.value.failure_count == 2


@pytest.mark.asyncio
async def test_deletes_run_after_creates_and_updates(make_record, reading_draft):
    records = reading_records(make_record)
    store = RecordingStore(records, delay=0.01)
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=4, check_stale=True)

    outcome = await executor.apply(mixed_plan(records, reading_draft))

    kinds = [kind for kind, _ in store.calls]
    first_delete = kinds.index("delete")
    assert "create" not in kinds[first_delete:]
    assert "update" not in kinds[first_delete:]
    assert outcome.failure_count == 0


@pytest.mark.asyncio
async def test_concurrency_is_bounded(reading_draft, make_question_draft):
    reading_draft.questions = [make_question_draft(f"Q{i}") for i in range(6)]
    store = RecordingStore(delay=0.01)
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=2, check_stale=False)

    outcome = await executor.apply(reconcile(Decomposer().decompose(reading_draft), None))

    assert outcome.success_count == 6
    assert store.max_in_flight == 2


@pytest.mark.asyncio
async def test_sequential_by_default(reading_draft):
    store = RecordingStore(delay=0.01)
    executor = ReconcileExecutor(store, timeout=1.0, max_concurrency=1, check_stale=False)

    await executor.apply(reconcile(Decomposer().decompose(reading_draft), None))

    assert store.max_in_flight == 1


@pytest.mark.asyncio
async def test_timeout_is_a_member_failure(reading_draft):
    store = RecordingStore(delay=0.5)
    executor = ReconcileExecutor(store, timeout=0.01, max_concurrency=2, check_stale=False)

    outcome = await executor.apply(reconcile(Decomposer().decompose(reading_draft), None))

    assert outcome.failure_count == 2
    assert all("Timed out" in f.error for f in outcome.failures)
    assert len(store) == 0


@pytest.mark.asyncio
async def test_empty_plan():
    executor = ReconcileExecutor(InMemoryQuestionStore(), timeout=1.0, max_concurrency=1)

    outcome = await executor.apply(ReconcilePlan())

    assert outcome.total == 0
    outcome.raise_for_failures()
