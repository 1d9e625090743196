"""Progress scoring and statistics from saved sessions."""
from cbt_prep.scheduler import round_half_up


def get_score_label(score: float) -> str:
    if score >= 70:
        return "GOOD"
    elif score >= 50:
        return "FAIR"
    return "WEAK"


def get_score_color(score: float) -> str:
    if score >= 70:
        return "green"
    elif score >= 50:
        return "yellow"
    return "red"


def get_study_stats(sessions: list) -> dict:
    if not sessions:
        return {"total_sessions": 0, "average_score": 0, "best_score": 0, "questions_answered": 0, "by_mode": {}}
    by_mode: dict[str, int] = {}
    for s in sessions:
        by_mode[s.mode] = by_mode.get(s.mode, 0) + 1
    return {
        "total_sessions": len(sessions),
        "average_score": round_half_up(sum(s.score for s in sessions) / len(sessions)),
        "best_score": max(s.score for s in sessions),
        "questions_answered": sum(s.correct + s.wrong for s in sessions),
        "by_mode": by_mode,
    }


def get_subject_averages(sessions: list) -> list[dict]:
    """Per-subject accuracy across all sessions, weakest first."""
    totals: dict[str, list[int]] = {}
    for s in sessions:
        for subject, sc in s.subject_scores.items():
            t = totals.setdefault(subject, [0, 0])
            t[0] += sc.correct
            t[1] += sc.total
    results = []
    for subject, (correct, total) in totals.items():
        score = round_half_up(correct / total * 100) if total else 0
        results.append({
            "subject": subject,
            "correct": correct,
            "total": total,
            "score": score,
            "label": get_score_label(score),
        })
    return sorted(results, key=lambda r: r["score"])


def recent_average(sessions: list, mode: str = "full", limit: int = 5) -> int:
    """Average score of the latest `limit` sessions of `mode` (sessions newest first)."""
    recent = [s for s in sessions if s.mode == mode][:limit]
    if not recent:
        return 0
    return round_half_up(sum(s.score for s in recent) / len(recent))
