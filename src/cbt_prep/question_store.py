"""Server-side question repository."""
import logging
import sqlite3

from cbt_prep.db import get_connection
from cbt_prep.models import OPTION_LABELS, Question

logger = logging.getLogger(__name__)

UPSERT_SQL = """INSERT INTO questions (
    external_id, subject, topic, question,
    option_a, option_b, option_c, option_d, option_e,
    answer, explanation, exam_type, exam_year, image_url, is_ai_generated
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(subject, question) DO UPDATE SET
    option_a = excluded.option_a,
    option_b = excluded.option_b,
    option_c = excluded.option_c,
    option_d = excluded.option_d,
    option_e = excluded.option_e,
    answer = excluded.answer,
    explanation = excluded.explanation
RETURNING id"""


def _params(q: Question) -> tuple:
    opts = q.options or {}
    return (
        q.external_id,
        q.subject,
        q.topic or None,
        q.question,
        *(opts.get(label) or None for label in OPTION_LABELS),
        q.answer,
        q.explanation or None,
        q.exam_type or "utme",
        q.exam_year or None,
        q.image,
        int(bool(q.is_ai_generated)),
    )


def row_to_question(row) -> Question:
    options = {label: row[f"option_{label}"] or "" for label in "abcd"}
    if row["option_e"]:
        options["e"] = row["option_e"]
    return Question(
        id=row["id"],
        subject=row["subject"],
        question=row["question"],
        options=options,
        answer=row["answer"],
        topic=row["topic"] or "",
        explanation=row["explanation"] or "",
        exam_type=row["exam_type"] or "utme",
        exam_year=row["exam_year"] or "",
        image=row["image_url"],
        is_ai_generated=bool(row["is_ai_generated"]),
        external_id=row["external_id"],
    )


def save_question(db_path: str, question: Question) -> int:
    """Insert a question, or refresh options/answer/explanation of an existing one."""
    question.validate()
    conn = get_connection(db_path)
    try:
        row = conn.execute(UPSERT_SQL, _params(question)).fetchone()
        conn.commit()
    finally:
        conn.close()
    return row["id"]


def save_questions_batch(db_path: str, questions: list) -> list[int]:
    """Upsert each question; invalid or failing items are logged and skipped."""
    saved = []
    for q in questions:
        try:
            saved.append(save_question(db_path, q))
        except (ValueError, sqlite3.Error) as e:
            logger.warning("error saving question for %s: %s", q.subject, e)
    return saved


def get_questions(db_path: str, subject: str, count: int = 40, topic: str = None) -> list[Question]:
    conn = get_connection(db_path)
    if topic:
        rows = conn.execute(
            "SELECT * FROM questions WHERE subject = ? AND topic = ? ORDER BY RANDOM() LIMIT ?",
            (subject, topic, count),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM questions WHERE subject = ? ORDER BY RANDOM() LIMIT ?",
            (subject, count),
        ).fetchall()
    conn.close()
    return [row_to_question(r) for r in rows]


def get_question_count(db_path: str, subject: str) -> int:
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM questions WHERE subject = ?", (subject,)).fetchone()[0]
    conn.close()
    return count


def get_all_subject_counts(db_path: str) -> dict:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT subject, COUNT(*) AS count FROM questions GROUP BY subject").fetchall()
    conn.close()
    return {row["subject"]: row["count"] for row in rows}
