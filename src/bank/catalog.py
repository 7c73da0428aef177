"""
Combined catalog view of the question bank.

Filtered records are collapsed into one entry per logical question: compound
groups become GroupEntry items, everything else a QuestionEntry. Grouping
runs over the filtered records only, while classification sees the whole
bank, so a filter can shrink a group without changing its modality.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from loguru import logger

from .assembler import GroupAssembler
from .classifier import ModalityClassifier, record_key
from .constants import LEVEL_CODE_TO_NAME, get_grade_name
from .group_key import record_group_key
from .models import FlatQuestionRecord, Modality, QuestionGroup

MODALITY_LABELS = {
    Modality.STANDARD_MC: "Standard MC",
    Modality.MATCHING_COLUMNS: "Matching / Columns",
    Modality.CLOZE_TEST: "Cloze Test",
    Modality.READING_COMPREHENSION: "Reading Comprehension",
}


def _timestamp(record: FlatQuestionRecord) -> float:
    return record.created_at.timestamp() if record.created_at else 0.0


def group_name(first: FlatQuestionRecord, modality: Modality, size: int) -> str:
    """'<subject> - <modality> - <n> question(s) - <grade> - <level>'."""
    subject = first.subject or first.subject_code
    level = first.level or LEVEL_CODE_TO_NAME.get(first.level_code, first.level_code)
    plural = "s" if size != 1 else ""
    return (
        f"{subject} - {MODALITY_LABELS[modality]} - {size} question{plural} - "
        f"{get_grade_name(first.grade)} - {level}"
    )


def group_key_string(group: QuestionGroup) -> str:
    """Stable identifier of a group within the catalog."""
    first = group.first
    axes = "_".join(first.code_axes())
    if group.modality is Modality.MATCHING_COLUMNS:
        return f"{record_group_key(first).group_id}_{axes}"
    return f"{first.informative_text or ''}_{axes}"


@dataclass
class QuestionEntry:
    record: FlatQuestionRecord

    @property
    def latest(self) -> float:
        return _timestamp(self.record)


@dataclass
class GroupEntry:
    group: QuestionGroup
    key: str
    name: str
    display_modality: Modality
    latest_date: datetime | None

    @property
    def latest(self) -> float:
        return self.latest_date.timestamp() if self.latest_date else 0.0


CatalogEntry = Union[QuestionEntry, GroupEntry]


def _group_entry(group: QuestionGroup, classifier: ModalityClassifier) -> GroupEntry:
    display = group.modality
    if (
        group.modality is Modality.READING_COMPREHENSION
        and group.size == 1
        and not classifier.is_english(group.first)
    ):
        display = Modality.STANDARD_MC
    dated = [r for r in group.records if r.created_at]
    return GroupEntry(
        group=group,
        key=group_key_string(group),
        name=group_name(group.first, display, group.size),
        display_modality=display,
        latest_date=max(dated, key=_timestamp).created_at if dated else None,
    )


def _bucket_by_axes(
    records: Sequence[FlatQuestionRecord],
) -> dict[tuple[str, str, str, str], list[FlatQuestionRecord]]:
    buckets: dict[tuple[str, str, str, str], list[FlatQuestionRecord]] = {}
    for record in records:
        buckets.setdefault(record.code_axes(), []).append(record)
    return buckets


def build_catalog(
    filtered: Sequence[FlatQuestionRecord],
    all_records: Sequence[FlatQuestionRecord],
    classifier: ModalityClassifier | None = None,
) -> list[CatalogEntry]:
    """
    Build the list view, newest entries first.

    Args:
        filtered: Records left after the active filters
        all_records: The whole bank, used to find classification siblings
        classifier: Classifier to use (default English subject code)
    """
    classifier = classifier or ModalityClassifier()
    assembler = GroupAssembler(classifier)
    entries: list[CatalogEntry] = []
    processed: set[str | int] = set()

    # Members and classification siblings always share the code axes
    filtered_by_axes = _bucket_by_axes(filtered)
    all_by_axes = _bucket_by_axes(all_records)

    for record in filtered:
        if record_key(record) in processed:
            continue
        axes = record.code_axes()
        group = assembler.assemble(
            record, filtered_by_axes[axes], sibling_candidates=all_by_axes.get(axes, ())
        )
        if group.is_compound:
            # Members already listed under an earlier entry stay there
            group.records = [
                r for r in group.records if r is record or record_key(r) not in processed
            ]
        processed.update(record_key(r) for r in group.records)
        if group.is_compound:
            entries.append(_group_entry(group, classifier))
        else:
            entries.append(QuestionEntry(record=record))

    entries.sort(key=lambda entry: entry.latest, reverse=True)
    logger.debug("Catalog: {} record(s) -> {} entries", len(filtered), len(entries))
    return entries
