"""
Question bank tables.

- questions: one row per flat single-choice question. Compound items
  (Matching/Columns, Cloze Test, Reading Comprehension) are several rows
  sharing axes and context; modality/group_id/shared_text are null on
  legacy rows.
- question_code_counters: last issued serial per code prefix
  (subject + topic + grade + level).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index, Integer, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class QuestionRow(Base):
    """A persisted flat question."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    code: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    # Code axes and their display names
    subject: Mapped[str] = mapped_column(Text, default="")
    subject_code: Mapped[str] = mapped_column(Text, nullable=False)
    topic: Mapped[str] = mapped_column(Text, default="")
    topic_code: Mapped[str] = mapped_column(Text, nullable=False)
    grade: Mapped[str] = mapped_column(Text, nullable=False)
    level: Mapped[str] = mapped_column(Text, default="")
    level_code: Mapped[str] = mapped_column(Text, nullable=False)

    # Content
    question_text: Mapped[str] = mapped_column(Text, default="")
    informative_text: Mapped[str | None] = mapped_column(Text)
    informative_images: Mapped[list] = mapped_column(JSONB, default=list)
    question_images: Mapped[list] = mapped_column(JSONB, default=list)
    options: Mapped[list] = mapped_column(JSONB, default=list)
    answer_type: Mapped[str] = mapped_column(Text, default="MCQ")

    # Grouping metadata
    modality: Mapped[str | None] = mapped_column(Text)
    group_id: Mapped[str | None] = mapped_column(Text, index=True)
    shared_text: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index("ix_questions_axes", "subject_code", "topic_code", "grade", "level_code"),
    )


class QuestionCodeCounter(Base):
    """Serial counter per code prefix."""

    __tablename__ = "question_code_counters"

    prefix: Mapped[str] = mapped_column(Text, primary_key=True)
    last_serial: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
