"""
Storage contract for flat question records.

The engine only talks to storage through QuestionStore. Field dictionaries
passed to create_record/update_record use the stored camelCase keys
(see FlatQuestionRecord.content_fields()).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from src.bank.models import FlatQuestionRecord


@dataclass
class CreatedRecord:
    """Identity assigned by the store to a new record."""

    id: str
    code: str


@dataclass
class RecordFilter:
    """
    Record query.

    Unset fields do not filter. search is a case-insensitive substring match
    over questionText, code, subject and topic.
    """

    subject_code: str | None = None
    topic_code: str | None = None
    grade: str | None = None
    level_code: str | None = None
    search: str | None = None

    @classmethod
    def for_axes(cls, record: FlatQuestionRecord) -> RecordFilter:
        """Filter matching the four code axes of a record."""
        return cls(
            subject_code=record.subject_code,
            topic_code=record.topic_code,
            grade=record.grade,
            level_code=record.level_code,
        )

    def is_empty(self) -> bool:
        return not any(
            (self.subject_code, self.topic_code, self.grade, self.level_code, self.search)
        )

    def matches(self, record: FlatQuestionRecord) -> bool:
        if self.subject_code and record.subject_code != self.subject_code:
            return False
        if self.topic_code and record.topic_code != self.topic_code:
            return False
        if self.grade and record.grade != self.grade:
            return False
        if self.level_code and record.level_code != self.level_code:
            return False
        if self.search:
            needle = self.search.lower()
            haystack = (record.question_text, record.code, record.subject, record.topic)
            if not any(needle in (value or "").lower() for value in haystack):
                return False
        return True


@runtime_checkable
class QuestionStore(Protocol):
    """Persistence collaborator for flat question records."""

    async def get_record(self, record_id: str) -> FlatQuestionRecord | None:
        ...

    async def get_records(self, record_ids: list[str]) -> list[FlatQuestionRecord]:
        ...

    async def query_records(self, record_filter: RecordFilter) -> list[FlatQuestionRecord]:
        ...

    async def create_record(self, fields: dict[str, Any]) -> CreatedRecord:
        ...

    async def update_record(
        self,
        record_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> None:
        ...

    async def delete_record(self, record_id: str) -> None:
        ...

    async def generate_code(
        self, subject_code: str, topic_code: str, grade: str, level_code: str
    ) -> str:
        ...
