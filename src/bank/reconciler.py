"""
Reconciliation of target records against a previously loaded group.

Targets are matched to previous members by persisted id first and by
position second. Matched pairs become updates carrying only changed fields,
unmatched targets become creates and unmatched members become deletes.
The plan is pure data; ReconcileExecutor performs the storage calls.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .constants import is_temporary_id
from .models import FlatQuestionRecord, QuestionGroup, TargetRecord

# Display names are optional in editor buffers; blanks never overwrite stored names
DISPLAY_NAME_FIELDS = ("subject", "topic", "level")

# Empty string and null are the same absent context
OPTIONAL_TEXT_FIELDS = ("informativeText",)


@dataclass
class CreateOp:
    target_index: int
    target: TargetRecord


@dataclass
class UpdateOp:
    target_index: int
    previous: FlatQuestionRecord
    target: TargetRecord
    changes: dict[str, Any]
    regenerate_code: bool = False

    @property
    def record_id(self) -> str:
        return self.previous.id


@dataclass
class DeleteOp:
    previous: FlatQuestionRecord

    @property
    def record_id(self) -> str:
        return self.previous.id


@dataclass
class ReconcilePlan:
    """Create/update/delete operations for one group save."""

    creates: list[CreateOp] = field(default_factory=list)
    updates: list[UpdateOp] = field(default_factory=list)
    deletes: list[DeleteOp] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def operation_count(self) -> int:
        return len(self.creates) + len(self.updates) + len(self.deletes)

    @property
    def is_empty(self) -> bool:
        return self.operation_count == 0

    def summary(self) -> dict[str, int]:
        return {
            "creates": len(self.creates),
            "updates": len(self.updates),
            "deletes": len(self.deletes),
            "unchanged": len(self.unchanged),
        }


def diff_record(previous: FlatQuestionRecord, target: FlatQuestionRecord) -> dict[str, Any]:
    """
    Fields of target that differ from previous.

    Grouping metadata only counts as a change when the previous record
    already carried it; once anything changes, all metadata is written.
    """
    before = previous.content_fields()
    changes = {
        name: value
        for name, value in target.content_fields().items()
        if before.get(name) != value
        and not (name in DISPLAY_NAME_FIELDS and not value)
        and not (name in OPTIONAL_TEXT_FIELDS and not value and not before.get(name))
    }

    before_meta = previous.metadata_fields()
    after_meta = target.metadata_fields()
    meta_changed = any(
        before_meta[name] is not None and before_meta[name] != value
        for name, value in after_meta.items()
    )

    if changes or meta_changed:
        changes.update(after_meta)
    return changes


class Reconciler:
    """Diffs decomposed targets against the group as it was loaded."""

    def reconcile(
        self,
        targets: Sequence[TargetRecord],
        previous_group: QuestionGroup | Sequence[FlatQuestionRecord] | None,
    ) -> ReconcilePlan:
        """
        Build the plan that turns previous_group into targets.

        Args:
            targets: Ordered decomposer output
            previous_group: Group loaded when editing started (None when creating)

        Returns:
            ReconcilePlan with creates, updates, deletes and unchanged ids
        """
        if previous_group is None:
            previous: list[FlatQuestionRecord] = []
        elif isinstance(previous_group, QuestionGroup):
            previous = list(previous_group.records)
        else:
            previous = list(previous_group)

        matches = self._match(targets, previous)
        plan = ReconcilePlan()
        claimed: set[int] = set()

        for index, target in enumerate(targets):
            match = matches.get(index)
            if match is None:
                plan.creates.append(CreateOp(target_index=index, target=target))
                continue

            claimed.add(match)
            member = previous[match]
            changes = diff_record(member, target.shape)
            regenerate_code = member.code_axes() != target.shape.code_axes() or not member.code
            if not changes and not regenerate_code:
                plan.unchanged.append(member.id)
                continue
            plan.updates.append(
                UpdateOp(
                    target_index=index,
                    previous=member,
                    target=target,
                    changes=changes,
                    regenerate_code=regenerate_code,
                )
            )

        for position, member in enumerate(previous):
            if position not in claimed and member.id:
                plan.deletes.append(DeleteOp(previous=member))

        logger.info("Reconcile plan: {}", plan.summary())
        return plan

    def _match(
        self,
        targets: Sequence[TargetRecord],
        previous: list[FlatQuestionRecord],
    ) -> dict[int, int]:
        """Map target index -> previous index: ids first, then positions."""
        by_id = {member.id: position for position, member in enumerate(previous) if member.id}
        matches: dict[int, int] = {}
        taken: set[int] = set()

        for index, target in enumerate(targets):
            source_id = target.source_id
            if not source_id or is_temporary_id(source_id):
                continue
            position = by_id.get(source_id)
            if position is not None and position not in taken:
                matches[index] = position
                taken.add(position)

        for index in range(len(targets)):
            if index in matches:
                continue
            if index < len(previous) and index not in taken and previous[index].id:
                matches[index] = index
                taken.add(index)

        return matches


def reconcile(
    targets: Sequence[TargetRecord],
    previous_group: QuestionGroup | Sequence[FlatQuestionRecord] | None,
) -> ReconcilePlan:
    return Reconciler().reconcile(targets, previous_group)
