"""Tests for shared-context range detection in delivered exams."""

from src.bank.exam_layout import GroupedRange, detect_grouped_ranges, normalize_context


def test_normalize_context():
    assert normalize_context("  Use  the\n table. ") == "Use the table."
    assert normalize_context(None) == ""


def test_ranges_for_shared_context(make_record):
    records = [
        make_record("q1", subject_code="MA", informative_text="Use the table."),
        make_record("q2", subject_code="MA", informative_text="Use  the table. "),
        make_record("q3", subject_code="MA"),
        make_record("q4", subject_code="MA", informative_text="A graph."),
        make_record("q5", subject_code="MA", informative_text="A graph."),
        make_record("q6", subject_code="MA", informative_text="A graph."),
    ]

    assert detect_grouped_ranges(records) == {
        0: GroupedRange(start=1, end=2),
        3: GroupedRange(start=4, end=6),
    }


def test_single_context_and_different_images_do_not_group(make_record):
    records = [
        make_record("q1", subject_code="MA", informative_text="Lone text."),
        make_record("q2", subject_code="MA", informative_text="Pic", informative_images=["a.png"]),
        make_record("q3", subject_code="MA", informative_text="Pic", informative_images=["b.png"]),
    ]

    assert detect_grouped_ranges(records) == {}


def test_english_questions_are_skipped(make_record):
    records = [
        make_record("q1", informative_text="Story"),
        make_record("q2", informative_text="Story"),
    ]

    assert detect_grouped_ranges(records) == {}
    assert detect_grouped_ranges(records, english_subject_code="IN") == {
        0: GroupedRange(start=1, end=2)
    }
