"""Data classes for questions, flashcards, cached batches and sessions."""
from dataclasses import asdict, dataclass, field
from typing import Optional

from cbt_prep.scheduler import round_half_up

OPTION_LABELS = ("a", "b", "c", "d", "e")


def cache_key(subject: str, count: int, year=None, exam_type: str = None) -> str:
    """Key for a cached question batch, distinct per query shape."""
    return f"{subject}-{count}-{year or 'all'}-{exam_type or 'utme'}"


@dataclass
class Question:
    id: object
    subject: str
    question: str
    options: dict
    answer: str
    topic: str = ""
    explanation: str = ""
    exam_type: str = "utme"
    exam_year: str = ""
    image: Optional[str] = None
    is_ai_generated: bool = False
    external_id: Optional[str] = None

    def validate(self) -> None:
        if not isinstance(self.subject, str) or not self.subject.strip():
            raise ValueError("question has no subject")
        if not isinstance(self.question, str) or not self.question.strip():
            raise ValueError("question has no text")
        if not isinstance(self.options, dict):
            raise ValueError(f"question options must be a mapping, got {type(self.options).__name__}")
        if not isinstance(self.answer, str):
            raise ValueError(f"answer must be an option label, got {self.answer!r}")
        labels = [k for k, v in self.options.items() if v]
        if not 2 <= len(labels) <= 5 or any(k not in OPTION_LABELS for k in labels):
            raise ValueError(f"question options must use 2-5 labels from a-e, got {labels}")
        if self.answer not in labels:
            raise ValueError(f"answer {self.answer!r} is not one of {labels}")

    def is_valid(self) -> bool:
        try:
            self.validate()
        except ValueError:
            return False
        return True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Flashcard:
    id: str
    subject: str
    topic: str
    front: str
    back: str
    source: str = "user"
    created_at: float = 0.0
    review_count: int = 0
    correct_count: int = 0
    last_reviewed: Optional[float] = None
    ease_factor: float = 2.5
    interval: int = 1
    streak: int = 0
    mastery: Optional[int] = None
    next_review: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Flashcard":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class CachedBatch:
    cache_key: str
    subject: str
    questions: list
    timestamp: float
    year: Optional[str] = None
    topic: Optional[str] = None


@dataclass
class SubjectScore:
    correct: int = 0
    total: int = 0

    @property
    def score(self) -> int:
        if self.total == 0:
            return 0
        return round_half_up(self.correct / self.total * 100)


@dataclass
class SessionRecord:
    id: str
    mode: str
    subjects: list
    subject_scores: dict
    correct: int
    wrong: int
    score: int
    duration: int
    timestamp: float
    name: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["subject_scores"] = {
            s: {"correct": v.correct, "total": v.total, "score": v.score}
            for s, v in self.subject_scores.items()
        }
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        scores = {
            s: SubjectScore(correct=v["correct"], total=v["total"])
            for s, v in data.get("subject_scores", {}).items()
        }
        return cls(
            id=data["id"],
            mode=data["mode"],
            subjects=list(data.get("subjects", [])),
            subject_scores=scores,
            correct=data["correct"],
            wrong=data["wrong"],
            score=data["score"],
            duration=data.get("duration", 0),
            timestamp=data["timestamp"],
            name=data.get("name"),
        )
