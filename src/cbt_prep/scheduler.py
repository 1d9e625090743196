"""Flashcard review scheduling (simplified spaced repetition)."""
import math
import time

MIN_EASE = 1.3
MAX_EASE = 3.0
DAY_SECONDS = 24 * 60 * 60
DIFFICULTIES = ("easy", "normal", "hard")


def round_half_up(value: float) -> int:
    # round() is banker's rounding; intervals and mastery round .5 up
    return math.floor(value + 0.5)


def calc_mastery(correct_count: int, review_count: int):
    """Percentage of reviews answered correctly, None before the first review."""
    if not review_count:
        return None
    return round_half_up(correct_count / review_count * 100)


def review_update(
    ease_factor: float,
    interval: int,
    review_count: int,
    correct_count: int,
    streak: int,
    correct: bool,
    difficulty: str = "normal",
    now: float = None,
) -> dict:
    """Apply one review event to a card's scheduling state.

    Args:
        ease_factor: Current ease factor (1.3-3.0)
        interval: Current interval in days
        review_count: Reviews so far
        correct_count: Correct reviews so far
        streak: Consecutive correct reviews
        correct: Whether this review was answered correctly
        difficulty: "easy", "normal" or "hard" (only used when correct)
        now: Review time as a unix timestamp, defaults to the current time

    Returns:
        Dict with the updated scheduling fields.
    """
    if difficulty not in DIFFICULTIES:
        raise ValueError(f"difficulty must be one of {DIFFICULTIES}, got {difficulty!r}")
    if now is None:
        now = time.time()

    ease = ease_factor
    if correct:
        if difficulty == "easy":
            ease = min(MAX_EASE, ease + 0.15)
            new_interval = round_half_up(interval * ease * 1.3)
        elif difficulty == "hard":
            ease = max(MIN_EASE, ease - 0.2)
            new_interval = round_half_up(interval * 1.2)
        else:
            new_interval = round_half_up(interval * ease)
        new_streak = streak + 1
    else:
        ease = max(MIN_EASE, ease - 0.2)
        new_interval = 1
        new_streak = 0

    new_interval = max(1, new_interval)
    reviews = review_count + 1
    corrects = correct_count + (1 if correct else 0)
    return {
        "ease_factor": round(ease, 2),
        "interval": new_interval,
        "streak": new_streak,
        "review_count": reviews,
        "correct_count": corrects,
        "last_reviewed": now,
        "next_review": now + new_interval * DAY_SECONDS,
        "mastery": calc_mastery(corrects, reviews),
    }


def is_due(card, now: float = None) -> bool:
    if now is None:
        now = time.time()
    return card.next_review is None or card.next_review <= now


def select_due(cards: list, now: float = None) -> list:
    """Due cards, weakest mastery first."""
    if now is None:
        now = time.time()
    due = [c for c in cards if is_due(c, now)]
    return sorted(due, key=lambda c: c.mastery or 0)
