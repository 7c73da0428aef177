"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.bank.models import (  # noqa: E402
    FlatQuestionRecord,
    GroupDraft,
    Modality,
    OptionDraft,
    QuestionDraft,
    QuestionOption,
    SharedFields,
)

BASE_TIME = datetime(2024, 3, 1, 8, 0, 0)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


def make_options(correct: int = 0, count: int = 4) -> list[QuestionOption]:
    return [
        QuestionOption(id="ABCD"[i], text=f"option {i + 1}", is_correct=i == correct)
        for i in range(count)
    ]


def make_option_drafts(correct: int = 0, count: int = 4) -> list[OptionDraft]:
    return [OptionDraft(text=f"option {i + 1}", is_correct=i == correct) for i in range(count)]


@pytest.fixture
def make_record():
    """Factory for flat records; minute offsets order createdAt."""

    def factory(
        record_id: str | None = None,
        subject_code: str = "EN",
        informative_text: str | None = None,
        question_text: str = "Which word fits?",
        minute: int = 0,
        **fields,
    ) -> FlatQuestionRecord:
        values = dict(
            id=record_id,
            code=f"{subject_code}VO6F{minute + 1:03d}" if record_id else None,
            subject="English" if subject_code == "EN" else "Mathematics",
            subject_code=subject_code,
            topic="Vocabulary",
            topic_code="VO",
            grade="6",
            level="Easy",
            level_code="F",
            question_text=question_text,
            informative_text=informative_text,
            options=make_options(),
            created_at=BASE_TIME + timedelta(minutes=minute),
            version=1 if record_id else None,
        )
        values.update(fields)
        return FlatQuestionRecord(**values)

    return factory


@pytest.fixture
def shared_fields():
    """Shared fields of an English 6th grade easy vocabulary group."""
    return SharedFields(
        subject_code="EN",
        topic_code="VO",
        grade="6",
        level_code="F",
        subject="English",
        topic="Vocabulary",
        level="Easy",
    )


@pytest.fixture
def make_question_draft():
    def factory(text: str = "Which word fits?", record_id: str | None = None, correct: int = 0):
        return QuestionDraft(
            question_text=text, options=make_option_drafts(correct), record_id=record_id
        )

    return factory


@pytest.fixture
def reading_draft(shared_fields, make_question_draft):
    """A two-question English reading comprehension buffer."""
    return GroupDraft(
        modality=Modality.READING_COMPREHENSION,
        shared=shared_fields,
        passage="Tom has a red bike. He rides it to school.",
        questions=[
            make_question_draft("What colour is the bike?"),
            make_question_draft("Where does Tom ride?", correct=1),
        ],
    )
