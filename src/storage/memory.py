"""
In-memory QuestionStore.

Backs the tests and the CLI's file mode, where records are read from and
written back to a JSON export (a list of stored documents, or an object
with a "questions" list).
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from loguru import logger

from src.bank.errors import RecordNotFound, StaleRecordError
from src.bank.models import FlatQuestionRecord

from .base import CreatedRecord, RecordFilter
from .codes import code_prefix, format_code, split_code


class InMemoryQuestionStore:
    """Dict-backed store with per-prefix code counters and record versions."""

    def __init__(self, records: list[FlatQuestionRecord] | None = None):
        self._documents: dict[str, dict[str, Any]] = {}
        self._counters: dict[str, int] = {}
        self._lock = asyncio.Lock()
        for record in records or []:
            self.add(record)

    # ========================================
    # Loading and export
    # ========================================

    def add(self, record: FlatQuestionRecord) -> FlatQuestionRecord:
        """Insert a record as-is, assigning an id and version if missing."""
        document = record.to_dict()
        document.setdefault("id", uuid4().hex)
        document.setdefault("version", 1)
        self._documents[document["id"]] = document
        self._bump_counter(document.get("code"))
        return FlatQuestionRecord.from_dict(document)

    @classmethod
    def from_json_file(cls, path: Path) -> InMemoryQuestionStore:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        documents = data.get("questions", []) if isinstance(data, dict) else data
        store = cls([FlatQuestionRecord.from_dict(doc) for doc in documents])
        logger.debug("Loaded {} question(s) from {}", len(store), path)
        return store

    def to_json_file(self, path: Path) -> None:
        documents = sorted(self._documents.values(), key=lambda d: d.get("createdAt") or "")
        Path(path).write_text(
            json.dumps({"questions": documents}, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        logger.debug("Wrote {} question(s) to {}", len(documents), path)

    def all_records(self) -> list[FlatQuestionRecord]:
        return [FlatQuestionRecord.from_dict(doc) for doc in self._documents.values()]

    def __len__(self) -> int:
        return len(self._documents)

    def _bump_counter(self, code: str | None) -> None:
        parts = split_code(code) if code else None
        if parts:
            prefix, serial = parts
            self._counters[prefix] = max(self._counters.get(prefix, 0), serial)

    # ========================================
    # QuestionStore
    # ========================================

    async def get_record(self, record_id: str) -> FlatQuestionRecord | None:
        document = self._documents.get(record_id)
        return FlatQuestionRecord.from_dict(document) if document else None

    async def get_records(self, record_ids: list[str]) -> list[FlatQuestionRecord]:
        return [
            FlatQuestionRecord.from_dict(self._documents[record_id])
            for record_id in record_ids
            if record_id in self._documents
        ]

    async def query_records(self, record_filter: RecordFilter) -> list[FlatQuestionRecord]:
        return [record for record in self.all_records() if record_filter.matches(record)]

    async def generate_code(
        self, subject_code: str, topic_code: str, grade: str, level_code: str
    ) -> str:
        async with self._lock:
            prefix = code_prefix(subject_code, topic_code, grade, level_code)
            serial = self._counters.get(prefix, 0) + 1
            self._counters[prefix] = serial
        return format_code(subject_code, topic_code, grade, level_code, serial)

    async def create_record(self, fields: dict[str, Any]) -> CreatedRecord:
        code = await self.generate_code(
            fields["subjectCode"], fields["topicCode"], fields["grade"], fields["levelCode"]
        )
        record_id = uuid4().hex
        self._documents[record_id] = {
            **fields,
            "id": record_id,
            "code": code,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "version": 1,
        }
        return CreatedRecord(id=record_id, code=code)

    async def update_record(
        self,
        record_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> None:
        document = self._documents.get(record_id)
        if document is None:
            raise RecordNotFound(record_id)
        current = document.get("version")
        if expected_version is not None and current != expected_version:
            raise StaleRecordError(record_id, expected_version, current)
        document.update(fields)
        document["version"] = (current or 0) + 1

    async def delete_record(self, record_id: str) -> None:
        if self._documents.pop(record_id, None) is None:
            raise RecordNotFound(record_id)
