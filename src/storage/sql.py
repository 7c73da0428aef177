"""
PostgreSQL QuestionStore over SQLAlchemy AsyncSession.

Every operation runs in its own session scope, so one failing member of a
group save does not poison the transaction of the others. Codes come from
an atomic upsert on question_code_counters; updates bump a version column
and can be made conditional on the version the caller loaded.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any
from uuid import uuid4

from loguru import logger
from sqlalchemy import bindparam, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import TextClause

from src.bank.constants import ANSWER_TYPE
from src.bank.errors import (
    RecordNotFound,
    StaleRecordError,
    StorageTimeout,
    StorageUnavailable,
)
from src.bank.models import FlatQuestionRecord
from src.db.queries import QUERIES

from .base import CreatedRecord, RecordFilter
from .codes import code_prefix, format_code

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]

# Stored field name -> column
FIELD_COLUMNS = {
    "code": "code",
    "subject": "subject",
    "subjectCode": "subject_code",
    "topic": "topic",
    "topicCode": "topic_code",
    "grade": "grade",
    "level": "level",
    "levelCode": "level_code",
    "questionText": "question_text",
    "informativeText": "informative_text",
    "informativeImages": "informative_images",
    "questionImages": "question_images",
    "options": "options",
    "answerType": "answer_type",
    "modality": "modality",
    "groupId": "group_id",
    "sharedText": "shared_text",
    "createdBy": "created_by",
}

COLUMN_FIELDS = {column: name for name, column in FIELD_COLUMNS.items()}

JSON_COLUMNS = frozenset({"informative_images", "question_images", "options"})

# NOT NULL columns a create may leave out
INSERT_DEFAULTS = {
    "subject": "",
    "topic": "",
    "level": "",
    "question_text": "",
    "answer_type": ANSWER_TYPE,
}

FILTER_COLUMNS = {
    "subject_code": "subject_code",
    "topic_code": "topic_code",
    "grade": "grade",
    "level_code": "level_code",
}


def row_to_record(row: Mapping[str, Any]) -> FlatQuestionRecord:
    """Convert a questions row mapping into a FlatQuestionRecord."""
    document = {COLUMN_FIELDS.get(column, column): value for column, value in row.items()}
    document["createdAt"] = document.pop("created_at", None)
    return FlatQuestionRecord.from_dict(document)


def _with_json_params(statement: TextClause, columns) -> TextClause:
    json_params = [bindparam(c, type_=JSONB) for c in columns if c in JSON_COLUMNS]
    return statement.bindparams(*json_params) if json_params else statement


def _columns_for(fields: Mapping[str, Any]) -> dict[str, Any]:
    unknown = sorted(set(fields) - set(FIELD_COLUMNS))
    if unknown:
        raise ValueError(f"Unknown question field(s): {', '.join(unknown)}")
    return {FIELD_COLUMNS[name]: value for name, value in fields.items()}


class SqlQuestionStore:
    """QuestionStore backed by the questions table."""

    def __init__(self, session_scope: SessionScope | None = None):
        if session_scope is None:
            from src.db.database import async_session_scope

            session_scope = async_session_scope
        self._session_scope = session_scope

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_scope() as session:
                yield session
        except (OperationalError, OSError) as e:
            logger.error("Database unavailable: {}", e)
            raise StorageUnavailable(str(e)) from e
        except PoolTimeoutError as e:
            raise StorageTimeout(str(e)) from e

    # ========================================
    # Reads
    # ========================================

    async def get_record(self, record_id: str) -> FlatQuestionRecord | None:
        async with self._session() as session:
            result = await session.execute(text(QUERIES["question_by_id"]), {"id": record_id})
            row = result.mappings().first()
        return row_to_record(row) if row else None

    async def get_records(self, record_ids: list[str]) -> list[FlatQuestionRecord]:
        if not record_ids:
            return []
        query = text(QUERIES["questions_by_ids"]).bindparams(bindparam("ids", expanding=True))
        async with self._session() as session:
            result = await session.execute(query, {"ids": list(record_ids)})
            rows = result.mappings().all()
        return [row_to_record(row) for row in rows]

    async def query_records(self, record_filter: RecordFilter) -> list[FlatQuestionRecord]:
        clauses: list[str] = []
        params: dict[str, Any] = {}
        for attr, column in FILTER_COLUMNS.items():
            value = getattr(record_filter, attr)
            if value:
                clauses.append(f"{column} = :{column}")
                params[column] = value
        if record_filter.search:
            clauses.append(
                "(question_text ILIKE :search OR code ILIKE :search "
                "OR subject ILIKE :search OR topic ILIKE :search)"
            )
            params["search"] = f"%{record_filter.search}%"

        sql = QUERIES["query_questions"]
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += QUERIES["query_questions_order"]

        async with self._session() as session:
            result = await session.execute(text(sql), params)
            rows = result.mappings().all()
        logger.debug("Query {} matched {} question(s)", params, len(rows))
        return [row_to_record(row) for row in rows]

    # ========================================
    # Writes
    # ========================================

    async def _next_code(
        self, session: AsyncSession, subject_code: str, topic_code: str, grade: str, level_code: str
    ) -> str:
        prefix = code_prefix(subject_code, topic_code, grade, level_code)
        result = await session.execute(text(QUERIES["next_code_serial"]), {"prefix": prefix})
        return format_code(subject_code, topic_code, grade, level_code, result.scalar_one())

    async def generate_code(
        self, subject_code: str, topic_code: str, grade: str, level_code: str
    ) -> str:
        async with self._session() as session:
            return await self._next_code(session, subject_code, topic_code, grade, level_code)

    async def create_record(self, fields: dict[str, Any]) -> CreatedRecord:
        params = {column: INSERT_DEFAULTS.get(column) for column in FIELD_COLUMNS.values()}
        params.update(_columns_for(fields))
        for column in JSON_COLUMNS:
            if params[column] is None:
                params[column] = []
        params["id"] = uuid4().hex

        async with self._session() as session:
            params["code"] = await self._next_code(
                session,
                params["subject_code"],
                params["topic_code"],
                params["grade"],
                params["level_code"],
            )
            query = _with_json_params(text(QUERIES["insert_question"]), JSON_COLUMNS)
            result = await session.execute(query, params)
            record_id = str(result.scalar_one())

        logger.info("Inserted question {} as {}", record_id, params["code"])
        return CreatedRecord(id=record_id, code=params["code"])

    async def update_record(
        self,
        record_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> None:
        columns = _columns_for(fields)
        assignments = [f"{column} = :{column}" for column in columns]
        assignments.append("version = version + 1")
        sql = f"UPDATE questions SET {', '.join(assignments)} WHERE id = :id"
        params: dict[str, Any] = {**columns, "id": record_id}
        if expected_version is not None:
            sql += " AND version = :expected_version"
            params["expected_version"] = expected_version

        async with self._session() as session:
            result = await session.execute(_with_json_params(text(sql), columns), params)
            if result.rowcount == 0:
                current = await session.execute(
                    text(QUERIES["question_version"]), {"id": record_id}
                )
                row = current.first()
                if row is None:
                    raise RecordNotFound(record_id)
                raise StaleRecordError(record_id, expected_version, row[0])

    async def delete_record(self, record_id: str) -> None:
        async with self._session() as session:
            result = await session.execute(text(QUERIES["delete_question"]), {"id": record_id})
            if result.rowcount == 0:
                raise RecordNotFound(record_id)
