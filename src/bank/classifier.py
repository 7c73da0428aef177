"""
Modality classification for flat question records.

The stored schema has no modality column on legacy records, so the tag is
inferred from two text signals: the Matching/Columns marker prefix in
informativeText and the blank-fill phrase in questionText. Rules are
evaluated in a fixed precedence order and the first match wins:

1. MATCHING_COLUMNS       - English + marker prefix
2. CLOZE_TEST             - English + context text + blank phrase
3. READING_COMPREHENSION  - context text, no marker, no blank phrase;
                            non-English subjects also need a sibling that
                            shares the text, images and axes
4. STANDARD_MC            - everything else

Records that carry an explicit modality are not inferred, except that a
non-English reading record without siblings still degrades to STANDARD_MC.
"""

from __future__ import annotations

from collections.abc import Iterable

from .constants import BLANK_FILL_PHRASE, ENGLISH_SUBJECT_CODE
from .group_key import is_matching_marker
from .models import FlatQuestionRecord, Modality


def is_same_record(a: FlatQuestionRecord, b: FlatQuestionRecord) -> bool:
    """Identity by id once persisted, by object before that."""
    if a.id and b.id:
        return a.id == b.id
    return a is b


def record_key(record: FlatQuestionRecord) -> str | int:
    """Hashable identity consistent with is_same_record."""
    return record.id or id(record)


def has_blank_phrase(record: FlatQuestionRecord) -> bool:
    return BLANK_FILL_PHRASE in (record.question_text or "")


def shares_context(a: FlatQuestionRecord, b: FlatQuestionRecord) -> bool:
    """Same axes, identical context text and identical context images."""
    return (
        a.code_axes() == b.code_axes()
        and a.informative_text == b.informative_text
        and list(a.informative_images) == list(b.informative_images)
    )


class ModalityClassifier:
    """Infers which compound-question modality a flat record belongs to."""

    def __init__(self, english_subject_code: str = ENGLISH_SUBJECT_CODE):
        self.english_subject_code = english_subject_code

    def is_english(self, record: FlatQuestionRecord) -> bool:
        return record.subject_code == self.english_subject_code

    def is_matching_columns(self, record: FlatQuestionRecord) -> bool:
        return self.is_english(record) and is_matching_marker(record.informative_text)

    def is_cloze_test(self, record: FlatQuestionRecord) -> bool:
        return (
            self.is_english(record)
            and record.has_informative_text()
            and has_blank_phrase(record)
        )

    def has_reading_shape(self, record: FlatQuestionRecord) -> bool:
        """Context text that is neither a marker nor a cloze passage."""
        return (
            record.has_informative_text()
            and not is_matching_marker(record.informative_text)
            and not has_blank_phrase(record)
        )

    def has_context_sibling(
        self,
        record: FlatQuestionRecord,
        sibling_candidates: Iterable[FlatQuestionRecord],
    ) -> bool:
        """A same-context record that could be read as a sibling (no other explicit modality)."""
        return any(
            not is_same_record(record, other)
            and other.modality in (None, Modality.READING_COMPREHENSION)
            and shares_context(record, other)
            for other in sibling_candidates
        )

    def classify(
        self,
        record: FlatQuestionRecord,
        sibling_candidates: Iterable[FlatQuestionRecord] = (),
    ) -> Modality:
        """Return the modality tag of a record given its possible siblings."""
        if record.modality is not None:
            if (
                record.modality is Modality.READING_COMPREHENSION
                and not self.is_english(record)
                and not self.has_context_sibling(record, sibling_candidates)
            ):
                return Modality.STANDARD_MC
            return record.modality

        if self.is_matching_columns(record):
            return Modality.MATCHING_COLUMNS

        if self.is_cloze_test(record):
            return Modality.CLOZE_TEST

        if self.has_reading_shape(record):
            if self.is_english(record):
                return Modality.READING_COMPREHENSION
            # A lone non-English question with context text is a plain MCQ
            if self.has_context_sibling(record, sibling_candidates):
                return Modality.READING_COMPREHENSION

        return Modality.STANDARD_MC


_default_classifier = ModalityClassifier()


def classify(
    record: FlatQuestionRecord,
    sibling_candidates: Iterable[FlatQuestionRecord] = (),
) -> Modality:
    """Classify with the default English subject code."""
    return _default_classifier.classify(record, sibling_candidates)
