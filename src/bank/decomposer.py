"""
Decomposition of an edited logical question into flat target records.

Each modality maps its editor buffer to an ordered list of TargetRecord
shapes sharing the group's axes:

- STANDARD_MC: one record
- MATCHING_COLUMNS: one record per sub-question, informativeText carries
  the encoded group key
- CLOZE_TEST: one record per distinct [n] marker in the passage, with a
  synthetic prompt for that blank
- READING_COMPREHENSION: one record per sub-question sharing the passage

The whole buffer is validated first; nothing is emitted on failure.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import replace

from loguru import logger

from .constants import (
    CLOZE_PROMPT_TEMPLATE,
    MATCHING_PREFIX,
    MIN_OPTIONS,
    OPTION_LETTERS,
    PASSAGE_BLANK_PATTERN,
)
from .errors import ValidationError
from .group_key import encode_group_key
from .models import (
    FlatQuestionRecord,
    GroupDraft,
    ImageRef,
    Modality,
    OptionDraft,
    PendingImage,
    QuestionOption,
    SharedFields,
    TargetRecord,
)

REQUIRED_SHARED_FIELDS = {
    "subjectCode": "subject_code",
    "topicCode": "topic_code",
    "grade": "grade",
    "levelCode": "level_code",
}


def find_blanks(passage: str) -> list[int]:
    """Distinct blank numbers marked as [n] in a passage, ascending."""
    return sorted({int(n) for n in PASSAGE_BLANK_PATTERN.findall(passage or "")})


def cloze_prompt(number: int) -> str:
    return CLOZE_PROMPT_TEMPLATE.format(number=number)


def mint_group_id(shared: SharedFields, now_ms: int) -> str:
    return f"{shared.topic_code}_{shared.grade}_{shared.level_code}_{now_ms}"


def _is_blank(text: str | None) -> bool:
    return not (text and text.strip())


def _image_url(ref: ImageRef | None) -> str | None:
    if isinstance(ref, PendingImage):
        raise TypeError(f"Image {ref.filename} must be uploaded before decomposing")
    return ref


def _validate_options(options: list[OptionDraft], prefix: str, errors: dict[str, str]) -> None:
    if len(options) < MIN_OPTIONS:
        errors[f"{prefix}.options"] = f"At least {MIN_OPTIONS} options are required"
    elif len(options) > len(OPTION_LETTERS):
        errors[f"{prefix}.options"] = f"At most {len(OPTION_LETTERS)} options are allowed"

    for index, option in enumerate(options):
        if _is_blank(option.text) and not option.image_url:
            errors[f"{prefix}.options[{index}].text"] = "Option text is empty"

    correct = sum(1 for option in options if option.is_correct)
    if options and correct != 1:
        errors[f"{prefix}.correct"] = f"Exactly one option must be correct (found {correct})"


def build_options(options: list[OptionDraft]) -> list[QuestionOption]:
    """Letter options densely from 'A' in authored order."""
    return [
        QuestionOption(
            id=OPTION_LETTERS[index],
            text=option.text,
            image_url=_image_url(option.image_url),
            is_correct=option.is_correct,
        )
        for index, option in enumerate(options)
    ]


class Decomposer:
    """Turns a GroupDraft into the flat records that should exist after a save."""

    def __init__(self, clock: Callable[[], int] | None = None):
        self._clock = clock or (lambda: int(time.time() * 1000))

    # ========================================
    # Validation
    # ========================================

    def validate(self, draft: GroupDraft) -> None:
        """Raise ValidationError with every problem found in the buffer."""
        errors: dict[str, str] = {}

        for name, attr in REQUIRED_SHARED_FIELDS.items():
            if _is_blank(getattr(draft.shared, attr)):
                errors[f"shared.{name}"] = "Required"

        if draft.modality is Modality.STANDARD_MC:
            if len(draft.questions) != 1:
                errors["questions"] = "A standard question has exactly one question"
        elif draft.modality is not Modality.CLOZE_TEST and not draft.questions:
            errors["questions"] = "At least one sub-question is required"

        if draft.modality in (Modality.READING_COMPREHENSION, Modality.CLOZE_TEST):
            if _is_blank(draft.passage):
                errors["passage"] = "The passage is required"

        if draft.modality is Modality.CLOZE_TEST:
            blanks = find_blanks(draft.passage)
            if not blanks and "passage" not in errors:
                errors["blanks"] = "No blanks marked as [n] in the passage"
            for number in blanks:
                blank = draft.blanks.get(number)
                if blank is None:
                    errors[f"blanks[{number}]"] = f"No options for blank [{number}]"
                else:
                    _validate_options(blank.options, f"blanks[{number}]", errors)
        else:
            for index, question in enumerate(draft.questions):
                prefix = f"questions[{index}]"
                if _is_blank(question.question_text) and not question.question_images:
                    errors[f"{prefix}.questionText"] = "Question text is empty"
                _validate_options(question.options, prefix, errors)

        if errors:
            logger.info("Rejected {} draft: {} problem(s)", draft.modality.value, len(errors))
            raise ValidationError(errors)

    # ========================================
    # Decomposition
    # ========================================

    def decompose(self, draft: GroupDraft) -> list[TargetRecord]:
        """Validate and return the ordered target records for a draft."""
        self.validate(draft)

        if draft.modality is Modality.STANDARD_MC:
            targets = self._decompose_standard(draft)
        elif draft.modality is Modality.MATCHING_COLUMNS:
            targets = self._decompose_matching(draft)
        elif draft.modality is Modality.CLOZE_TEST:
            targets = self._decompose_cloze(draft)
        else:
            targets = self._decompose_reading(draft)

        logger.debug("Decomposed {} draft into {} record(s)", draft.modality.value, len(targets))
        return targets

    def _base_shape(self, draft: GroupDraft, **fields) -> FlatQuestionRecord:
        shared = draft.shared
        return FlatQuestionRecord(
            subject=shared.subject,
            subject_code=shared.subject_code,
            topic=shared.topic,
            topic_code=shared.topic_code,
            grade=shared.grade,
            level=shared.level,
            level_code=shared.level_code,
            informative_images=[_image_url(ref) for ref in shared.informative_images],
            created_by=draft.created_by,
            modality=draft.modality,
            **fields,
        )

    def _question_targets(self, draft: GroupDraft, informative_text: str | None, **metadata):
        return [
            TargetRecord(
                shape=self._base_shape(
                    draft,
                    question_text=question.question_text,
                    question_images=[_image_url(ref) for ref in question.question_images],
                    options=build_options(question.options),
                    informative_text=informative_text,
                    **metadata,
                ),
                source_id=question.record_id,
            )
            for question in draft.questions
        ]

    def _decompose_standard(self, draft: GroupDraft) -> list[TargetRecord]:
        context = draft.passage if not _is_blank(draft.passage) else None
        return self._question_targets(draft, context)

    def _decompose_matching(self, draft: GroupDraft) -> list[TargetRecord]:
        group_id = draft.group_id or mint_group_id(draft.shared, self._clock())
        if group_id.startswith(MATCHING_PREFIX):
            group_id = group_id[len(MATCHING_PREFIX):]
        shared_text = draft.shared_text.strip() or None
        marker = encode_group_key(group_id, shared_text)
        return self._question_targets(
            draft, marker, group_id=group_id, shared_text=shared_text
        )

    def _decompose_cloze(self, draft: GroupDraft) -> list[TargetRecord]:
        numbers = find_blanks(draft.passage)
        unused = sorted(set(draft.blanks) - set(numbers))
        if unused:
            logger.debug("Ignoring options for blanks not in passage: {}", unused)

        return [
            TargetRecord(
                shape=self._base_shape(
                    draft,
                    question_text=cloze_prompt(number),
                    options=build_options(draft.blanks[number].options),
                    informative_text=draft.passage,
                ),
                source_id=draft.blanks[number].record_id,
            )
            for number in numbers
        ]

    def _decompose_reading(self, draft: GroupDraft) -> list[TargetRecord]:
        return self._question_targets(draft, draft.passage)


def decompose(
    modality: Modality,
    draft: GroupDraft,
    shared: SharedFields | None = None,
) -> list[TargetRecord]:
    """Decompose a buffer as the given modality, optionally overriding shared fields."""
    draft = replace(draft, modality=modality, shared=shared or draft.shared)
    return Decomposer().decompose(draft)
