"""
Matching/Columns group key codec.

Matching/Columns members carry their group identity inside informativeText:

    MATCHING_COLUMNS_<groupId>
    MATCHING_COLUMNS_<groupId>|<sharedText>

Records written by this engine also store groupId/sharedText explicitly;
those fields win over the encoded marker when present.
"""

from __future__ import annotations

from loguru import logger

from .constants import GROUP_KEY_SEPARATOR, MATCHING_PREFIX
from .models import FlatQuestionRecord, GroupKey


def encode_group_key(group_id: str, shared_text: str | None = None) -> str:
    """Build the informativeText marker for a Matching/Columns member."""
    marker = f"{MATCHING_PREFIX}{group_id}"
    text = (shared_text or "").strip()
    if not text:
        return marker
    if GROUP_KEY_SEPARATOR in text:
        # Legacy readers split on the first pipe and lose part of the text
        logger.warning(
            "Shared text for group {} contains '{}'; legacy readers will misread it",
            group_id,
            GROUP_KEY_SEPARATOR,
        )
    return f"{marker}{GROUP_KEY_SEPARATOR}{text}"


def decode_group_key(informative_text: str | None) -> GroupKey:
    """Split a marker into group id and shared text."""
    if not informative_text:
        return GroupKey(group_id="")

    if GROUP_KEY_SEPARATOR in informative_text:
        token, *rest = informative_text.split(GROUP_KEY_SEPARATOR)
        shared_text = GROUP_KEY_SEPARATOR.join(rest)
    else:
        token, shared_text = informative_text, ""

    if token.startswith(MATCHING_PREFIX):
        token = token[len(MATCHING_PREFIX):]
    return GroupKey(group_id=token, shared_text=shared_text)


def record_group_key(record: FlatQuestionRecord) -> GroupKey:
    """Group key of a record, preferring its explicit fields."""
    if record.group_id:
        return GroupKey(group_id=record.group_id, shared_text=record.shared_text or "")
    return decode_group_key(record.informative_text)


def is_matching_marker(informative_text: str | None) -> bool:
    return bool(informative_text) and MATCHING_PREFIX in informative_text
