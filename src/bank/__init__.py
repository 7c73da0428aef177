"""
Question bank grouping engine.

Maps between flat single-choice question records and the compound
questions authors edit:

- ModalityClassifier: which modality a flat record belongs to
- GroupAssembler: expand a record into its ordered group
- Decomposer: turn an edited group into target flat records
- Reconciler / ReconcileExecutor: diff and apply targets against storage

QuestionBankService (src.bank.service) wires them to a QuestionStore.
"""

from .assembler import GroupAssembler, assemble
from .catalog import GroupEntry, QuestionEntry, build_catalog
from .classifier import ModalityClassifier, classify
from .decomposer import Decomposer, decompose
from .errors import (
    ImageRejectedError,
    PartialBatchFailure,
    QuestionBankError,
    RecordNotFound,
    StaleRecordError,
    StaleSnapshotError,
    StorageError,
    StorageTimeout,
    StorageUnavailable,
    ValidationError,
)
from .exam_layout import GroupedRange, detect_grouped_ranges
from .executor import OperationResult, ReconcileExecutor, ReconcileOutcome
from .group_key import decode_group_key, encode_group_key
from .models import (
    FlatQuestionRecord,
    GroupDraft,
    GroupKey,
    Modality,
    QuestionGroup,
    QuestionOption,
    TargetRecord,
)
from .reconciler import ReconcilePlan, Reconciler, reconcile

__all__ = [
    # Engine
    "ModalityClassifier",
    "classify",
    "GroupAssembler",
    "assemble",
    "Decomposer",
    "decompose",
    "Reconciler",
    "reconcile",
    "ReconcilePlan",
    "ReconcileExecutor",
    "ReconcileOutcome",
    "OperationResult",
    "encode_group_key",
    "decode_group_key",
    # Views
    "build_catalog",
    "GroupEntry",
    "QuestionEntry",
    "detect_grouped_ranges",
    "GroupedRange",
    # Models
    "Modality",
    "FlatQuestionRecord",
    "QuestionOption",
    "QuestionGroup",
    "GroupKey",
    "GroupDraft",
    "TargetRecord",
    # Errors
    "QuestionBankError",
    "ValidationError",
    "PartialBatchFailure",
    "StaleSnapshotError",
    "ImageRejectedError",
    "StorageError",
    "StorageTimeout",
    "StorageUnavailable",
    "RecordNotFound",
    "StaleRecordError",
]
