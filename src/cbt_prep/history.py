"""Session records: practice, full exam and study results kept on this device."""
import time
import uuid

from cbt_prep.models import SessionRecord, SubjectScore
from cbt_prep.scheduler import round_half_up

MODES = ("practice", "full", "study")


def build_session_record(mode: str, answers: list, duration: int, name: str = None, now: float = None) -> SessionRecord:
    """Summarize (subject, correct) answer pairs into a SessionRecord."""
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
    scores: dict[str, SubjectScore] = {}
    for subject, correct in answers:
        s = scores.setdefault(subject, SubjectScore())
        s.total += 1
        s.correct += 1 if correct else 0
    correct = sum(s.correct for s in scores.values())
    total = sum(s.total for s in scores.values())
    return SessionRecord(
        id=f"session-{uuid.uuid4().hex[:12]}",
        mode=mode,
        subjects=list(scores),
        subject_scores=scores,
        correct=correct,
        wrong=total - correct,
        score=round_half_up(correct / total * 100) if total else 0,
        duration=int(duration),
        timestamp=time.time() if now is None else now,
        name=name,
    )


async def save_session(store, record: SessionRecord) -> SessionRecord:
    await store.put_session(record)
    return record


async def list_sessions(store, mode: str = None) -> list[SessionRecord]:
    sessions = await store.get_sessions()
    if mode:
        sessions = [s for s in sessions if s.mode == mode]
    return sessions


async def delete_session(store, session_id: str) -> None:
    await store.delete_session(session_id)


async def clear_sessions(store) -> None:
    await store.clear_sessions()
