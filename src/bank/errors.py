"""
Exceptions raised by the question bank engine and its storage collaborators.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .executor import ReconcileOutcome


class QuestionBankError(Exception):
    """Base class for question bank errors."""


class ValidationError(QuestionBankError):
    """An edit buffer cannot be decomposed. Raised before any write."""

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        summary = "; ".join(f"{name}: {reason}" for name, reason in self.errors.items())
        super().__init__(f"Invalid question group: {summary}")


class PartialBatchFailure(QuestionBankError):
    """Some member operations of a group save failed. Nothing was rolled back."""

    def __init__(self, outcome: ReconcileOutcome):
        self.outcome = outcome
        super().__init__(
            f"{outcome.failure_count} of {outcome.total} member operations failed "
            f"({outcome.success_count} succeeded)"
        )

    @property
    def success_count(self) -> int:
        return self.outcome.success_count

    @property
    def failure_count(self) -> int:
        return self.outcome.failure_count


class StaleSnapshotError(QuestionBankError):
    """The group changed in storage after it was loaded for editing."""

    def __init__(self, record_ids: list[str]):
        self.record_ids = list(record_ids)
        super().__init__(f"Group changed since it was loaded: {', '.join(self.record_ids)}")


class ImageRejectedError(QuestionBankError):
    """An image failed size or type validation."""


# ========================================
# Storage collaborator errors
# ========================================


class StorageError(QuestionBankError):
    """A storage call failed."""


class StorageTimeout(StorageError):
    """A storage call did not finish in time."""


class StorageUnavailable(StorageError):
    """The store could not be reached."""


class RecordNotFound(StorageError):
    """The record does not exist."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Question not found: {record_id}")


class StaleRecordError(StorageError):
    """An update was based on an outdated record version."""

    def __init__(self, record_id: str, expected: int | None, actual: int | None):
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Question {record_id} is at version {actual}, expected {expected}"
        )
