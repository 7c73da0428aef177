"""
Question bank constants shared by the grouping engine.

Centralizes the literal markers that existing stored data relies on, so
classification, decomposition and display stay consistent.
"""

from __future__ import annotations

import re

# =============================================================================
# Subjects
# =============================================================================
# Matching/Columns and Cloze Test only exist for this subject
ENGLISH_SUBJECT_CODE = "EN"

# =============================================================================
# Wire markers - must match stored data exactly
# =============================================================================
MATCHING_PREFIX = "MATCHING_COLUMNS_"
GROUP_KEY_SEPARATOR = "|"

# Substring every Cloze Test prompt carries ("fill the blank")
BLANK_FILL_PHRASE = "completar el hueco"
CLOZE_PROMPT_TEMPLATE = "Selecciona la palabra correcta para completar el hueco [{number}]"

# "hueco [3]" in a prompt, "[3]" in a passage
BLANK_NUMBER_PATTERN = re.compile(r"hueco \[(\d+)\]")
PASSAGE_BLANK_PATTERN = re.compile(r"\[(\d+)\]")

# =============================================================================
# Editor buffers
# =============================================================================
# Ids minted by the editor for unsaved sub-questions
TEMP_ID_PREFIX = "temp_"

MIN_OPTIONS = 2
OPTION_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
ANSWER_TYPE = "MCQ"

# =============================================================================
# Display
# =============================================================================
GRADE_CODE_TO_NAME = {
    "6": "Sixth",
    "7": "Seventh",
    "8": "Eighth",
    "9": "Ninth",
    "0": "Tenth",
    "1": "Eleventh",
}

LEVEL_CODE_TO_NAME = {
    "F": "Easy",
    "M": "Medium",
    "D": "Hard",
}


def get_grade_name(grade: str) -> str:
    """Get the display name of a grade code, falling back to the code."""
    return GRADE_CODE_TO_NAME.get(grade, grade)


def is_temporary_id(record_id: str | None) -> bool:
    """Check if an id was minted by the editor and never persisted."""
    return bool(record_id) and record_id.startswith(TEMP_ID_PREFIX)
