"""
Group assembly: expand a seed record into its full logical group.

Membership is decided by a per-modality equivalence predicate and members
are returned in a total display order, so a group looks the same on every
reload and group sizes can be compared between load and save.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from loguru import logger

from .classifier import ModalityClassifier, has_blank_phrase, is_same_record, record_key
from .constants import BLANK_NUMBER_PATTERN
from .group_key import is_matching_marker, record_group_key
from .models import FlatQuestionRecord, Modality, QuestionGroup


def blank_number(record: FlatQuestionRecord) -> int | None:
    """The n of 'hueco [n]' in a cloze prompt, if any."""
    match = BLANK_NUMBER_PATTERN.search(record.question_text or "")
    return int(match.group(1)) if match else None


def member_sort_key(record: FlatQuestionRecord, modality: Modality) -> tuple:
    """
    Display order key.

    Cloze members go by blank number (unnumbered ones last); everything is
    then ordered by creation time, code and finally id.
    """
    created = record.created_at.timestamp() if record.created_at else 0.0
    tail = (created, record.code or "", record.id or "")
    if modality is Modality.CLOZE_TEST:
        number = blank_number(record)
        head = (0, number) if number is not None else (1, 0)
        return head + tail
    return tail


def order_members(
    records: Iterable[FlatQuestionRecord], modality: Modality
) -> list[FlatQuestionRecord]:
    return sorted(records, key=lambda r: member_sort_key(r, modality))


class GroupAssembler:
    """Finds the siblings that form the same logical question as a seed."""

    def __init__(self, classifier: ModalityClassifier | None = None):
        self.classifier = classifier or ModalityClassifier()

    def belongs(
        self,
        modality: Modality,
        seed: FlatQuestionRecord,
        candidate: FlatQuestionRecord,
    ) -> bool:
        """Equivalence predicate between a seed of a given modality and a candidate."""
        if candidate.modality is not None and candidate.modality is not modality:
            return False
        if candidate.code_axes() != seed.code_axes():
            return False

        if modality is Modality.MATCHING_COLUMNS:
            group_id = record_group_key(seed).group_id
            return bool(group_id) and record_group_key(candidate).group_id == group_id

        same_context = (
            candidate.informative_text == seed.informative_text
            and list(candidate.informative_images) == list(seed.informative_images)
        )

        if modality is Modality.CLOZE_TEST:
            return (
                same_context
                and self.classifier.is_english(candidate)
                and has_blank_phrase(candidate)
            )

        if modality is Modality.READING_COMPREHENSION:
            return (
                same_context
                and not has_blank_phrase(candidate)
                and not is_matching_marker(candidate.informative_text)
            )

        return is_same_record(seed, candidate)

    def assemble(
        self,
        seed: FlatQuestionRecord,
        all_records: Sequence[FlatQuestionRecord],
        sibling_candidates: Sequence[FlatQuestionRecord] | None = None,
    ) -> QuestionGroup:
        """
        Build the ordered group the seed belongs to.

        Args:
            seed: Record the user opened or that the list is expanding
            all_records: Records members are drawn from
            sibling_candidates: Records used to classify the seed
                (default: all_records)

        Returns:
            QuestionGroup with the seed's modality and ordered members
        """
        modality = self.classifier.classify(
            seed, all_records if sibling_candidates is None else sibling_candidates
        )

        if modality is Modality.STANDARD_MC:
            return QuestionGroup(modality=modality, records=[seed])

        members: list[FlatQuestionRecord] = []
        member_keys: set[str | int] = set()
        for candidate in all_records:
            key = record_key(candidate)
            if key in member_keys:
                continue
            if is_same_record(seed, candidate) or self.belongs(modality, seed, candidate):
                members.append(candidate)
                member_keys.add(key)

        if record_key(seed) not in member_keys:
            members.append(seed)

        ordered = order_members(members, modality)
        logger.debug(
            "Assembled {} group of {} from seed {}",
            modality.value,
            len(ordered),
            seed.id or seed.code,
        )
        return QuestionGroup(modality=modality, records=ordered)


_default_assembler = GroupAssembler()


def assemble(
    seed: FlatQuestionRecord, all_records: Sequence[FlatQuestionRecord]
) -> QuestionGroup:
    """Assemble with the default classifier."""
    return _default_assembler.assemble(seed, all_records)
