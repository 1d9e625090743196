"""Flashcard lifecycle: create, list, review and AI generation."""
import logging
import time
import uuid

from cbt_prep.models import Flashcard
from cbt_prep.scheduler import review_update, round_half_up, select_due

logger = logging.getLogger(__name__)


def new_card_id() -> str:
    return f"fc-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


async def create_flashcard(store, subject: str, topic: str, front: str, back: str, source: str = "user") -> Flashcard:
    card = Flashcard(
        id=new_card_id(),
        subject=subject,
        topic=topic,
        front=front.strip(),
        back=back.strip(),
        source=source,
        created_at=time.time(),
    )
    await store.put_flashcard(card)
    return card


async def list_flashcards(store, subject: str = None, topic: str = None) -> list[Flashcard]:
    return await store.get_flashcards(subject, topic)


async def delete_flashcard(store, card_id: str) -> None:
    await store.delete_flashcard(card_id)


async def review_flashcard(store, card_id: str, correct: bool, difficulty: str = "normal", now: float = None) -> bool:
    """Record one review. An unknown id is a no-op that still reports success."""
    card = await store.get_flashcard(card_id)
    if card is None:
        logger.debug("review of unknown flashcard %s ignored", card_id)
        return True
    updated = review_update(
        ease_factor=card.ease_factor,
        interval=card.interval,
        review_count=card.review_count,
        correct_count=card.correct_count,
        streak=card.streak,
        correct=correct,
        difficulty=difficulty,
        now=now,
    )
    for name, value in updated.items():
        setattr(card, name, value)
    await store.put_flashcard(card)
    return True


async def get_due_cards(store, subject: str = None, now: float = None) -> list[Flashcard]:
    cards = await store.get_flashcards(subject)
    return select_due(cards, now)


async def generate_flashcards(store, ai, subject: str, topic: str, count: int = 5) -> list[Flashcard]:
    """Ask the AI for cards on a topic and save them; malformed output saves nothing."""
    raw = await ai.generate_flashcards(subject, topic, count)
    cards = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        front, back = item.get("front"), item.get("back")
        if not front or not back:
            continue
        cards.append(await create_flashcard(store, subject, topic, front, back, source="ai"))
    logger.info("saved %d generated flashcards for %s/%s", len(cards), subject, topic)
    return cards


def session_summary(results: list[bool]) -> dict:
    correct = sum(1 for r in results if r)
    total = len(results)
    return {
        "correct": correct,
        "incorrect": total - correct,
        "accuracy": round_half_up(correct / total * 100) if total else 0,
    }
