"""Tests for the SQL question store against a mocked AsyncSession."""

from contextlib import asynccontextmanager
from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from src.bank.errors import RecordNotFound, StaleRecordError, StorageUnavailable
from src.storage.base import RecordFilter
from src.storage.sql import SqlQuestionStore, row_to_record


class FakeMappings:
    def __init__(self, rows):
        self._rows = rows

    def first(self):
        return self._rows[0] if self._rows else None

    def all(self):
        return list(self._rows)


class FakeResult:
    def __init__(self, scalar_value=None, rowcount=0, first_row=None, rows=None):
        self._scalar_value = scalar_value
        self.rowcount = rowcount
        self._first_row = first_row
        self._rows = rows or []

    def scalar_one(self):
        return self._scalar_value

    def first(self):
        return self._first_row

    def mappings(self):
        return FakeMappings(self._rows)


def make_store(session):
    @asynccontextmanager
    async def scope():
        yield session

    return SqlQuestionStore(session_scope=scope)


def question_row(**overrides):
    row = {
        "id": "q-1",
        "code": "ENVO6F001",
        "subject": "English",
        "subject_code": "EN",
        "topic": "Vocabulary",
        "topic_code": "VO",
        "grade": "6",
        "level": "Easy",
        "level_code": "F",
        "question_text": "Which word fits?",
        "informative_text": "MATCHING_COLUMNS_G1",
        "informative_images": [],
        "question_images": [],
        "options": [{"id": "A", "text": "dog", "imageUrl": None, "isCorrect": True}],
        "answer_type": "MCQ",
        "modality": "matching_columns",
        "group_id": "G1",
        "shared_text": None,
        "created_by": "author-1",
        "created_at": datetime(2024, 3, 1, 8, 0),
        "version": 3,
    }
    row.update(overrides)
    return row


def sql_of(call):
    return str(call.args[0])


def test_row_to_record():
    record = row_to_record(question_row())

    assert record.id == "q-1"
    assert record.subject_code == "EN"
    assert record.group_id == "G1"
    assert record.options[0].is_correct is True
    assert record.created_at == datetime(2024, 3, 1, 8, 0)
    assert record.version == 3


@pytest.mark.asyncio
async def test_get_record_found_and_missing():
    session = AsyncMock()
    session.execute.side_effect = [FakeResult(rows=[question_row()]), FakeResult(rows=[])]
    store = make_store(session)

    assert (await store.get_record("q-1")).code == "ENVO6F001"
    assert await store.get_record("nope") is None


@pytest.mark.asyncio
async def test_get_records_skips_query_for_empty_ids():
    session = AsyncMock()
    store = make_store(session)

    assert await store.get_records([]) == []
    assert not session.execute.called


@pytest.mark.asyncio
async def test_query_records_builds_where_clause():
    session = AsyncMock()
    session.execute.return_value = FakeResult(rows=[question_row()])
    store = make_store(session)

    records = await store.query_records(RecordFilter(subject_code="EN", grade="6", search="dog"))

    assert len(records) == 1
    sql = sql_of(session.execute.call_args)
    params = session.execute.call_args.args[1]
    assert "subject_code = :subject_code" in sql
    assert "grade = :grade" in sql
    assert "ILIKE :search" in sql
    assert "ORDER BY created_at DESC" in sql
    assert params == {"subject_code": "EN", "grade": "6", "search": "%dog%"}


@pytest.mark.asyncio
async def test_generate_code_uses_counter_serial():
    session = AsyncMock()
    session.execute.return_value = FakeResult(scalar_value=12)
    store = make_store(session)

    code = await store.generate_code("EN", "VO", "6", "F")

    assert code == "ENVO6F012"
    assert "ON CONFLICT (prefix)" in sql_of(session.execute.call_args)
    assert session.execute.call_args.args[1] == {"prefix": "ENVO6F"}


@pytest.mark.asyncio
async def test_create_record_issues_code_then_inserts():
    session = AsyncMock()
    session.execute.side_effect = [FakeResult(scalar_value=1), FakeResult(scalar_value="new-id")]
    store = make_store(session)

    created = await store.create_record(
        {
            "subjectCode": "EN",
            "topicCode": "VO",
            "grade": "6",
            "levelCode": "F",
            "questionText": "Which word fits?",
            "modality": "standard_mc",
        }
    )

    assert created.id == "new-id"
    assert created.code == "ENVO6F001"
    insert_params = session.execute.call_args_list[1].args[1]
    assert insert_params["code"] == "ENVO6F001"
    assert insert_params["options"] == []
    assert insert_params["informative_text"] is None


@pytest.mark.asyncio
async def test_create_record_rejects_unknown_fields():
    store = make_store(AsyncMock())

    with pytest.raises(ValueError):
        await store.create_record({"subjectCode": "EN", "bogus": 1})


@pytest.mark.asyncio
async def test_update_record_with_expected_version():
    session = AsyncMock()
    session.execute.return_value = FakeResult(rowcount=1)
    store = make_store(session)

    await store.update_record("q-1", {"questionText": "v2", "groupId": "G2"}, expected_version=3)

    sql = sql_of(session.execute.call_args)
    params = session.execute.call_args.args[1]
    assert "question_text = :question_text" in sql
    assert "version = version + 1" in sql
    assert "AND version = :expected_version" in sql
    assert params["expected_version"] == 3
    assert params["group_id"] == "G2"


@pytest.mark.asyncio
async def test_update_record_stale_version():
    session = AsyncMock()
    session.execute.side_effect = [FakeResult(rowcount=0), FakeResult(first_row=(5,))]
    store = make_store(session)

    with pytest.raises(StaleRecordError) as exc_info:
        await store.update_record("q-1", {"questionText": "v2"}, expected_version=3)

    assert exc_info.value.expected == 3
    assert exc_info.value.actual == 5


@pytest.mark.asyncio
async def test_update_record_missing():
    session = AsyncMock()
    session.execute.side_effect = [FakeResult(rowcount=0), FakeResult(first_row=None)]
    store = make_store(session)

    with pytest.raises(RecordNotFound):
        await store.update_record("nope", {"questionText": "v2"})


@pytest.mark.asyncio
async def test_delete_record():
    session = AsyncMock()
    session.execute.side_effect = [FakeResult(rowcount=1), FakeResult(rowcount=0)]
    store = make_store(session)

    await store.delete_record("q-1")
    with pytest.raises(RecordNotFound):
        await store.delete_record("q-1")


@pytest.mark.asyncio
async def test_connection_errors_become_storage_unavailable():
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    store = make_store(session)

    with pytest.raises(StorageUnavailable):
        await store.get_record("q-1")
