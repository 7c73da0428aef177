"""Storage collaborators: question stores and the image uploader."""

from .base import CreatedRecord, QuestionStore, RecordFilter
from .codes import code_prefix, format_code
from .images import ImageUploader
from .memory import InMemoryQuestionStore
from .sql import SqlQuestionStore

__all__ = [
    "CreatedRecord",
    "QuestionStore",
    "RecordFilter",
    "code_prefix",
    "format_code",
    "ImageUploader",
    "InMemoryQuestionStore",
    "SqlQuestionStore",
]
