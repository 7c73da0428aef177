"""
Data types for flat question records and their logical groups.

A FlatQuestionRecord is one persisted single-choice question. Compound
items (Matching/Columns, Cloze Test, Reading Comprehension) exist only as
QuestionGroup projections over several flat records.

Stored documents use camelCase keys; from_dict()/to_dict() translate.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Union

from .constants import ANSWER_TYPE


class Modality(str, Enum):
    """Compound-question kinds a flat record can belong to."""
    STANDARD_MC = "standard_mc"
    MATCHING_COLUMNS = "matching_columns"
    CLOZE_TEST = "cloze_test"
    READING_COMPREHENSION = "reading_comprehension"


# Persisted content fields compared when reconciling (id/code/createdAt excluded)
CONTENT_FIELDS = (
    "subject",
    "subjectCode",
    "topic",
    "topicCode",
    "grade",
    "level",
    "levelCode",
    "questionText",
    "informativeText",
    "informativeImages",
    "questionImages",
    "options",
    "answerType",
)

# Explicit grouping metadata written next to the legacy marker
METADATA_FIELDS = ("modality", "groupId", "sharedText")

CODE_AXES = ("subjectCode", "topicCode", "grade", "levelCode")


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class QuestionOption:
    """One lettered answer option."""

    id: str
    text: str | None = None
    image_url: str | None = None
    is_correct: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionOption:
        return cls(
            id=data.get("id", ""),
            text=data.get("text"),
            image_url=data.get("imageUrl"),
            is_correct=bool(data.get("isCorrect", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "imageUrl": self.image_url,
            "isCorrect": self.is_correct,
        }


@dataclass
class FlatQuestionRecord:
    """A single persisted multiple-choice question."""

    subject_code: str
    topic_code: str
    grade: str
    level_code: str
    question_text: str = ""
    informative_text: str | None = None
    informative_images: list[str] = field(default_factory=list)
    question_images: list[str] = field(default_factory=list)
    options: list[QuestionOption] = field(default_factory=list)
    id: str | None = None
    code: str | None = None
    subject: str = ""
    topic: str = ""
    level: str = ""
    answer_type: str = ANSWER_TYPE
    created_by: str | None = None
    created_at: datetime | None = None
    # Explicit grouping metadata; absent on legacy records
    modality: Modality | None = None
    group_id: str | None = None
    shared_text: str | None = None
    version: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FlatQuestionRecord:
        """Parse a stored document."""
        modality = data.get("modality")
        return cls(
            id=data.get("id"),
            code=data.get("code"),
            subject=data.get("subject", ""),
            subject_code=data.get("subjectCode", ""),
            topic=data.get("topic", ""),
            topic_code=data.get("topicCode", ""),
            grade=str(data.get("grade", "")),
            level=data.get("level", ""),
            level_code=data.get("levelCode", ""),
            question_text=data.get("questionText") or "",
            informative_text=data.get("informativeText"),
            informative_images=list(data.get("informativeImages") or []),
            question_images=list(data.get("questionImages") or []),
            options=[QuestionOption.from_dict(o) for o in data.get("options") or []],
            answer_type=data.get("answerType", ANSWER_TYPE),
            created_by=data.get("createdBy"),
            created_at=_parse_datetime(data.get("createdAt")),
            modality=Modality(modality) if modality else None,
            group_id=data.get("groupId"),
            shared_text=data.get("sharedText"),
            version=data.get("version"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a stored document, dropping unset values."""
        data = {
            "id": self.id,
            "code": self.code,
            **self.content_fields(),
            **self.metadata_fields(),
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "version": self.version,
        }
        return {k: v for k, v in data.items() if v is not None}

    def content_fields(self) -> dict[str, Any]:
        """Fields a save writes and a reconcile compares."""
        return {
            "subject": self.subject,
            "subjectCode": self.subject_code,
            "topic": self.topic,
            "topicCode": self.topic_code,
            "grade": self.grade,
            "level": self.level,
            "levelCode": self.level_code,
            "questionText": self.question_text,
            "informativeText": self.informative_text,
            "informativeImages": list(self.informative_images),
            "questionImages": list(self.question_images),
            "options": [o.to_dict() for o in self.options],
            "answerType": self.answer_type,
        }

    def metadata_fields(self) -> dict[str, Any]:
        return {
            "modality": self.modality.value if self.modality else None,
            "groupId": self.group_id,
            "sharedText": self.shared_text,
        }

    def code_axes(self) -> tuple[str, str, str, str]:
        """The four fields a record code is derived from."""
        return (self.subject_code, self.topic_code, self.grade, self.level_code)

    def has_informative_text(self) -> bool:
        return bool(self.informative_text and self.informative_text.strip())

    def correct_option(self) -> QuestionOption | None:
        return next((o for o in self.options if o.is_correct), None)


@dataclass
class QuestionGroup:
    """Ordered flat records that form one logical question."""

    modality: Modality
    records: list[FlatQuestionRecord]

    @property
    def size(self) -> int:
        return len(self.records)

    @property
    def ids(self) -> list[str]:
        return [r.id for r in self.records if r.id]

    @property
    def first(self) -> FlatQuestionRecord:
        return self.records[0]

    @property
    def is_compound(self) -> bool:
        return self.modality is not Modality.STANDARD_MC


@dataclass(frozen=True)
class GroupKey:
    """Decoded Matching/Columns marker."""

    group_id: str
    shared_text: str = ""


# =============================================================================
# Editor buffers (input to the decomposer)
# =============================================================================


@dataclass
class PendingImage:
    """Image bytes picked in the editor and not yet uploaded."""

    data: bytes
    filename: str
    content_type: str = "image/png"


ImageRef = Union[str, PendingImage]


@dataclass
class OptionDraft:
    text: str | None = None
    is_correct: bool = False
    image_url: ImageRef | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OptionDraft:
        return cls(
            text=data.get("text"),
            is_correct=bool(data.get("isCorrect", False)),
            image_url=data.get("imageUrl"),
        )


@dataclass
class QuestionDraft:
    """One authored sub-question (or the single question of a Standard MC)."""

    question_text: str
    options: list[OptionDraft] = field(default_factory=list)
    question_images: list[ImageRef] = field(default_factory=list)
    record_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionDraft:
        return cls(
            question_text=data.get("questionText", ""),
            options=[OptionDraft.from_dict(o) for o in data.get("options") or []],
            question_images=list(data.get("questionImages") or []),
            record_id=data.get("id"),
        )


@dataclass
class ClozeBlankDraft:
    """Author-entered options for one numbered blank."""

    options: list[OptionDraft] = field(default_factory=list)
    record_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClozeBlankDraft:
        return cls(
            options=[OptionDraft.from_dict(o) for o in data.get("options") or []],
            record_id=data.get("id"),
        )


@dataclass
class SharedFields:
    """Fields common to every member of a group."""

    subject_code: str
    topic_code: str
    grade: str
    level_code: str
    informative_images: list[ImageRef] = field(default_factory=list)
    subject: str = ""
    topic: str = ""
    level: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SharedFields:
        return cls(
            subject_code=data.get("subjectCode", ""),
            topic_code=data.get("topicCode", ""),
            grade=str(data.get("grade", "")),
            level_code=data.get("levelCode", ""),
            informative_images=list(data.get("informativeImages") or []),
            subject=data.get("subject", ""),
            topic=data.get("topic", ""),
            level=data.get("level", ""),
        )

    @classmethod
    def from_record(cls, record: FlatQuestionRecord) -> SharedFields:
        return cls(
            subject_code=record.subject_code,
            topic_code=record.topic_code,
            grade=record.grade,
            level_code=record.level_code,
            informative_images=list(record.informative_images),
            subject=record.subject,
            topic=record.topic,
            level=record.level,
        )


@dataclass
class GroupDraft:
    """
    Editor buffer for one logical question.

    Which attributes matter depends on the modality:
    - STANDARD_MC: questions[0], optional context in passage
    - MATCHING_COLUMNS: questions, shared_text, group_id (when editing)
    - CLOZE_TEST: passage with [n] markers, blanks keyed by n
    - READING_COMPREHENSION: passage, questions
    """

    modality: Modality
    shared: SharedFields
    questions: list[QuestionDraft] = field(default_factory=list)
    passage: str = ""
    shared_text: str = ""
    blanks: dict[int, ClozeBlankDraft] = field(default_factory=dict)
    group_id: str | None = None
    created_by: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GroupDraft:
        """Parse an editor buffer exported as JSON."""
        return cls(
            modality=Modality(data["modality"]),
            shared=SharedFields.from_dict(data.get("shared") or {}),
            questions=[QuestionDraft.from_dict(q) for q in data.get("questions") or []],
            passage=data.get("passage", ""),
            shared_text=data.get("sharedText", ""),
            blanks={
                int(number): ClozeBlankDraft.from_dict(blank)
                for number, blank in (data.get("blanks") or {}).items()
            },
            group_id=data.get("groupId"),
            created_by=data.get("createdBy"),
        )


@dataclass
class TargetRecord:
    """A flat record shape the decomposer wants persisted."""

    shape: FlatQuestionRecord
    source_id: str | None = None  # id carried by the editor buffer, may be temporary

    def with_shape(self, **changes: Any) -> TargetRecord:
        return TargetRecord(shape=replace(self.shape, **changes), source_id=self.source_id)
