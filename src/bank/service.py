"""
Question bank service: read and write paths over a QuestionStore.

Read: fetch a record, pull the records sharing its axes, assemble the group.
Write: validate the editor buffer, upload pending images, decompose,
reconcile against the group as it was loaded, execute the plan.
"""

from __future__ import annotations

import time
from dataclasses import replace

from loguru import logger

from config import get_settings
from src.storage.base import QuestionStore, RecordFilter
from src.storage.images import ImageUploader

from .assembler import GroupAssembler
from .catalog import CatalogEntry, build_catalog
from .classifier import ModalityClassifier
from .decomposer import Decomposer
from .errors import RecordNotFound
from .executor import ReconcileExecutor, ReconcileOutcome
from .models import (
    FlatQuestionRecord,
    GroupDraft,
    ImageRef,
    OptionDraft,
    PendingImage,
    QuestionGroup,
)
from .reconciler import DeleteOp, ReconcilePlan, Reconciler


def record_image_urls(record: FlatQuestionRecord) -> list[str]:
    """Every image URL a record references."""
    urls = list(record.informative_images) + list(record.question_images)
    urls.extend(o.image_url for o in record.options if o.image_url)
    return urls


class QuestionBankService:
    """Loads, lists, saves and deletes logical questions."""

    def __init__(
        self,
        store: QuestionStore,
        uploader: ImageUploader | None = None,
        classifier: ModalityClassifier | None = None,
        decomposer: Decomposer | None = None,
        executor: ReconcileExecutor | None = None,
    ):
        self.store = store
        self.uploader = uploader
        self.classifier = classifier or ModalityClassifier(get_settings().english_subject_code)
        self.assembler = GroupAssembler(self.classifier)
        self.decomposer = decomposer or Decomposer()
        self.reconciler = Reconciler()
        self.executor = executor or ReconcileExecutor(store)

    # ========================================
    # Read path
    # ========================================

    async def load_group(self, record_id: str) -> QuestionGroup:
        """
        Load the logical question a record belongs to.

        Raises:
            RecordNotFound: No record with that id
        """
        seed = await self.store.get_record(record_id)
        if seed is None:
            raise RecordNotFound(record_id)
        siblings = await self.store.query_records(RecordFilter.for_axes(seed))
        group = self.assembler.assemble(seed, siblings)
        logger.info("Loaded {} group of {} for {}", group.modality.value, group.size, record_id)
        return group

    async def list_catalog(self, record_filter: RecordFilter | None = None) -> list[CatalogEntry]:
        """Catalog entries for the filtered bank, newest first."""
        all_records = await self.store.query_records(RecordFilter())
        record_filter = record_filter or RecordFilter()
        filtered = [r for r in all_records if record_filter.matches(r)]
        return build_catalog(filtered, all_records, self.classifier)

    # ========================================
    # Write path
    # ========================================

    async def save_group(
        self,
        draft: GroupDraft,
        previous: QuestionGroup | None = None,
    ) -> ReconcileOutcome:
        """
        Persist an edited logical question.

        Args:
            draft: Editor buffer
            previous: Group as loaded when editing started (None for new questions)

        Returns:
            Outcome of the member operations; call raise_for_failures() to
            treat partial failure as an error

        Raises:
            ValidationError: The buffer is invalid (nothing written)
            ImageRejectedError: A pending image is too big or of the wrong type
            StaleSnapshotError: The group changed since it was loaded
        """
        self.decomposer.validate(draft)
        draft = await self.upload_images(draft)
        targets = self.decomposer.decompose(draft)
        plan = self.reconciler.reconcile(targets, previous)
        return await self.executor.apply(plan)

    async def delete_group(self, group: QuestionGroup) -> ReconcileOutcome:
        """Delete every member of a group, then its uploaded images."""
        plan = ReconcilePlan(deletes=[DeleteOp(previous=m) for m in group.records if m.id])
        outcome = await self.executor.apply(plan)

        if self.uploader is not None:
            deleted = {r.record_id for r in outcome.results if r.ok}
            urls = dict.fromkeys(
                url
                for member in group.records
                if member.id in deleted
                for url in record_image_urls(member)
            )
            for url in urls:
                await self.uploader.delete_image(url)
        return outcome

    # ========================================
    # Images
    # ========================================

    def _get_uploader(self) -> ImageUploader:
        if self.uploader is None:
            self.uploader = ImageUploader()
        return self.uploader

    async def _resolve(self, ref: ImageRef | None) -> str | None:
        if not isinstance(ref, PendingImage):
            return ref
        path_hint = f"questions/{int(time.time() * 1000)}_{ref.filename}"
        return await self._get_uploader().upload(ref.data, path_hint, ref.content_type)

    async def _resolve_options(self, options: list[OptionDraft]) -> list[OptionDraft]:
        return [replace(o, image_url=await self._resolve(o.image_url)) for o in options]

    async def upload_images(self, draft: GroupDraft) -> GroupDraft:
        """Return a copy of the draft with every PendingImage replaced by a URL."""
        shared = replace(
            draft.shared,
            informative_images=[await self._resolve(r) for r in draft.shared.informative_images],
        )
        questions = [
            replace(
                q,
                question_images=[await self._resolve(r) for r in q.question_images],
                options=await self._resolve_options(q.options),
            )
            for q in draft.questions
        ]
        blanks = {
            number: replace(blank, options=await self._resolve_options(blank.options))
            for number, blank in draft.blanks.items()
        }
        return replace(draft, shared=shared, questions=questions, blanks=blanks)
