"""
Shared-context ranges for delivered exams.

When an exam is rendered, questions answered from the same text get a
"questions X to Y refer to the following information" banner. English
sections render their compound items themselves and are skipped.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from .constants import ENGLISH_SUBJECT_CODE
from .models import FlatQuestionRecord

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class GroupedRange:
    """1-based inclusive question positions sharing one context."""

    start: int
    end: int


def normalize_context(text: str | None) -> str:
    """Trim and collapse whitespace so formatting differences still group."""
    return _WHITESPACE.sub(" ", (text or "").strip())


def detect_grouped_ranges(
    records: Sequence[FlatQuestionRecord],
    english_subject_code: str = ENGLISH_SUBJECT_CODE,
) -> dict[int, GroupedRange]:
    """
    Find questions that share context text and images.

    Args:
        records: Questions in exam order
        english_subject_code: Subject whose questions are skipped

    Returns:
        Mapping of the 0-based index of each group's first question to its
        range; only groups of two or more questions appear
    """
    members: dict[tuple[str, tuple[str, ...]], list[int]] = {}
    for index, record in enumerate(records):
        if record.subject_code == english_subject_code or not record.has_informative_text():
            continue
        key = (normalize_context(record.informative_text), tuple(record.informative_images))
        members.setdefault(key, []).append(index)

    return {
        indices[0]: GroupedRange(start=indices[0] + 1, end=indices[-1] + 1)
        for indices in members.values()
        if len(indices) > 1
    }
