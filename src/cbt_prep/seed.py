"""Static subject list and packaged question content."""
import json
from pathlib import Path

from cbt_prep.models import Question

CONTENT_DIR = Path(__file__).parent / "content"

SUBJECTS = {
    "english": "English Language",
    "mathematics": "Mathematics",
    "physics": "Physics",
    "chemistry": "Chemistry",
    "biology": "Biology",
    "literature": "Literature in English",
    "government": "Government",
    "commerce": "Commerce",
    "accounting": "Accounting",
    "economics": "Economics",
    "crk": "Christian Religious Studies",
    "irk": "Islamic Religious Studies",
    "geography": "Geography",
    "agric": "Agricultural Science",
    "history": "History",
}


def subject_name(subject: str) -> str:
    return SUBJECTS.get(subject, subject)


def literary_supplement(count: int = 15) -> list[Question]:
    """Fixed literature questions appended to English exam papers."""
    data = json.loads((CONTENT_DIR / "literature.json").read_text(encoding="utf-8"))
    questions = [
        Question(
            id=q["id"],
            subject="english",
            question=q["question"],
            options=q["options"],
            answer=q["answer"],
            topic=data["section"],
            explanation=q.get("explanation", ""),
            exam_type="utme",
            exam_year="2024",
        )
        for q in data["questions"]
    ]
    return questions[:count]
