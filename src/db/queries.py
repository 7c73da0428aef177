"""
Centralized SQL queries for the question bank.

Usage:
    from src.db.queries import QUERIES

    result = await session.execute(text(QUERIES["question_by_id"]), {"id": record_id})
"""

from __future__ import annotations

QUESTION_COLUMNS = """
    id, code, subject, subject_code, topic, topic_code, grade, level, level_code,
    question_text, informative_text, informative_images, question_images, options,
    answer_type, modality, group_id, shared_text, created_by, created_at, version
"""

# =============================================================================
# READS
# =============================================================================

GET_QUESTION_BY_ID = f"""
    SELECT {QUESTION_COLUMNS}
    FROM questions
    WHERE id = :id
"""

GET_QUESTIONS_BY_IDS = f"""
    SELECT {QUESTION_COLUMNS}
    FROM questions
    WHERE id IN :ids
"""

# WHERE clause appended by the store from the active RecordFilter fields
QUERY_QUESTIONS = f"""
    SELECT {QUESTION_COLUMNS}
    FROM questions
"""

QUERY_QUESTIONS_ORDER = """
    ORDER BY created_at DESC, code
"""

GET_QUESTION_VERSION = """
    SELECT version FROM questions WHERE id = :id
"""

# =============================================================================
# WRITES
# =============================================================================

INSERT_QUESTION = """
    INSERT INTO questions (
        id, code, subject, subject_code, topic, topic_code, grade, level, level_code,
        question_text, informative_text, informative_images, question_images, options,
        answer_type, modality, group_id, shared_text, created_by, version
    ) VALUES (
        :id, :code, :subject, :subject_code, :topic, :topic_code, :grade, :level, :level_code,
        :question_text, :informative_text, :informative_images, :question_images, :options,
        :answer_type, :modality, :group_id, :shared_text, :created_by, 1
    )
    RETURNING id
"""

DELETE_QUESTION = """
    DELETE FROM questions WHERE id = :id
"""

# Atomic per-prefix serial; first use of a prefix issues 1
NEXT_CODE_SERIAL = """
    INSERT INTO question_code_counters (prefix, last_serial)
    VALUES (:prefix, 1)
    ON CONFLICT (prefix)
    DO UPDATE SET last_serial = question_code_counters.last_serial + 1
    RETURNING last_serial
"""

QUERIES = {
    # Reads
    "question_by_id": GET_QUESTION_BY_ID,
    "questions_by_ids": GET_QUESTIONS_BY_IDS,
    "query_questions": QUERY_QUESTIONS,
    "query_questions_order": QUERY_QUESTIONS_ORDER,
    "question_version": GET_QUESTION_VERSION,

    # Writes
    "insert_question": INSERT_QUESTION,
    "delete_question": DELETE_QUESTION,
    "next_code_serial": NEXT_CODE_SERIAL,
}
