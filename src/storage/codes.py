"""Question code format: subject, topic, grade and level codes plus a 3-digit serial."""

from __future__ import annotations

import re

CODE_SERIAL_WIDTH = 3

_CODE_PATTERN = re.compile(r"^(?P<prefix>.+?)(?P<serial>\d{3,})$")


def code_prefix(subject_code: str, topic_code: str, grade: str, level_code: str) -> str:
    """Counter key shared by every question with the same axes."""
    return f"{subject_code}{topic_code}{grade}{level_code}"


def format_code(
    subject_code: str, topic_code: str, grade: str, level_code: str, serial: int
) -> str:
    """
    Build a question code.

    Example:
        format_code("MA", "AL", "6", "F", 7) -> "MAAL6F007"
    """
    return f"{code_prefix(subject_code, topic_code, grade, level_code)}{serial:0{CODE_SERIAL_WIDTH}d}"


def split_code(code: str) -> tuple[str, int] | None:
    """Split a code into (prefix, serial), or None if it has no serial."""
    match = _CODE_PATTERN.match(code or "")
    if not match:
        return None
    return match.group("prefix"), int(match.group("serial"))
