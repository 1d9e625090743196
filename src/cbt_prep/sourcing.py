"""Tiered question sourcing with in-memory and persistent cache fallback.

A request for N questions walks the tiers in order, stopping as soon as N
are accumulated:

1. the persistent cache entry for the exact query shape
2. the companion backend (random sample from its database)
3. the question bank's multi-question endpoint
4. the question bank's bulk endpoint
5. the AI adapter, for at most AI_FALLBACK_BATCH questions

Each tier's failure is logged and treated as "no results from this tier".
"""
import logging
import time

from cbt_prep.errors import CBTError, NoQuestionsError
from cbt_prep.models import CachedBatch, Question, cache_key
from cbt_prep.question_bank import normalize_question
from cbt_prep.seed import literary_supplement, subject_name

logger = logging.getLogger(__name__)

MEMORY_TTL = 5 * 60
AI_FALLBACK_BATCH = 5
EXAM_COUNTS = {"english": 60}
DEFAULT_EXAM_COUNT = 40
EXAM_CAP = 60
SUPPLEMENT_SIZE = 15


def merge_unique(accumulated: list, incoming: list, limit: int) -> list:
    """Append items whose id is not yet present, stopping at `limit`. Mutates and returns `accumulated`."""
    seen = {str(q.id) for q in accumulated}
    for q in incoming:
        if len(accumulated) >= limit:
            break
        key = str(q.id)
        if key in seen:
            continue
        seen.add(key)
        accumulated.append(q)
    return accumulated


def _normalize_all(raw_items: list, subject: str, offset: int = 0) -> list[Question]:
    questions = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            continue
        q = normalize_question(raw, offset + i, subject)
        if q.is_valid():
            questions.append(q)
    dropped = len(raw_items) - len(questions)
    if dropped:
        logger.debug("dropped %d unusable %s questions", dropped, subject)
    return questions


class QuestionSource:
    def __init__(self, store, bank, backend=None, ai=None, clock=time.monotonic):
        self.store = store
        self.bank = bank
        self.backend = backend
        self.ai = ai
        self.clock = clock
        self._memory: dict[str, tuple[float, list]] = {}

    def clear_memory_cache(self) -> None:
        self._memory.clear()

    def _from_memory(self, key: str):
        entry = self._memory.get(key)
        if entry is None:
            return None
        stamp, questions = entry
        if self.clock() - stamp >= MEMORY_TTL:
            del self._memory[key]
            return None
        return list(questions)

    async def _cached(self, key: str) -> list[Question]:
        try:
            batch = await self.store.get_batch(key)
        except CBTError as e:
            logger.warning("cache read for %s failed: %s", key, e)
            return []
        return list(batch.questions) if batch else []

    async def _remember(self, key: str, subject: str, questions: list, year=None, topic=None) -> None:
        self._memory[key] = (self.clock(), list(questions))
        batch = CachedBatch(
            cache_key=key, subject=subject, questions=list(questions),
            timestamp=time.time(), year=str(year) if year else None, topic=topic,
        )
        try:
            await self.store.put_batch(batch)
        except CBTError as e:
            logger.warning("cache write for %s failed: %s", key, e)

    async def _backend_tier(self, subject, count, topic):
        raw_items = await self.backend.fetch_questions(subject, count, topic)
        # backend rows carry the bank id as external_id; dedupe on that
        raw_items = [
            {**r, "id": r.get("external_id") or r.get("id")} if isinstance(r, dict) else r
            for r in raw_items
        ]
        return _normalize_all(raw_items, subject)

    async def fetch_questions(self, subject: str, count: int = 40, year=None, topic: str = None) -> list[Question]:
        """Up to `count` distinct questions; [] when every tier and cache comes up empty."""
        key = cache_key(subject, count, year)
        remembered = self._from_memory(key)
        if remembered is not None:
            return remembered[:count]

        questions: list[Question] = []
        merge_unique(questions, await self._cached(key), count)

        tiers = []
        if self.backend is not None:
            tiers.append(("backend", lambda: self._backend_tier(subject, count, topic)))
        tiers.append(("bank", lambda: self._bank_tier(self.bank.fetch_many(subject, count, year), subject, len(questions))))
        tiers.append(("bank bulk", lambda: self._bank_tier(self.bank.fetch_bulk(subject), subject, len(questions))))

        for name, tier in tiers:
            if len(questions) >= count:
                break
            try:
                found = await tier()
            except CBTError as e:
                logger.warning("%s tier failed for %s: %s", name, subject, e)
                continue
            before = len(questions)
            merge_unique(questions, found, count)
            logger.debug("%s tier added %d %s questions", name, len(questions) - before, subject)

        if len(questions) < count and self.ai is not None and self.ai.configured:
            batch = min(count - len(questions), AI_FALLBACK_BATCH)
            try:
                merge_unique(questions, await self.ai.generate_questions(subject, topic, batch), count)
            except CBTError as e:
                logger.warning("AI tier failed for %s: %s", subject, e)

        if not questions:
            return await self._any_cached(subject, count)

        await self._remember(key, subject, questions, year, topic)
        logger.info("sourced %d/%d %s questions", len(questions), count, subject)
        return questions

    async def _bank_tier(self, pending, subject: str, offset: int) -> list[Question]:
        return _normalize_all(await pending, subject, offset)

    async def _any_cached(self, subject: str, count: int) -> list[Question]:
        """Last resort: whatever batches the store holds for the subject."""
        try:
            batches = await self.store.batches_for_subject(subject)
        except CBTError as e:
            logger.warning("cache scan for %s failed: %s", subject, e)
            return []
        questions: list[Question] = []
        for batch in sorted(batches, key=lambda b: b.timestamp, reverse=True):
            merge_unique(questions, batch.questions, count)
        if not questions:
            logger.warning("no questions available for %s", subject)
        return questions

    async def get_question(self, subject: str, year=None) -> Question:
        """One random question from the bank's single-question endpoint, else from any stored batch."""
        try:
            raw = await self.bank.fetch_one(subject, year)
        except CBTError as e:
            logger.warning("single question fetch for %s failed: %s", subject, e)
        else:
            found = _normalize_all([raw] if raw else [], subject)
            if found:
                return found[0]
        questions = await self._any_cached(subject, 1)
        if not questions:
            raise NoQuestionsError(f"No questions available for {subject_name(subject)}")
        return questions[0]

    async def load_practice_questions(self, subject: str, count: int = 40, year=None) -> list[Question]:
        return await self.fetch_questions(subject, count, year)

    async def load_exam_questions(self, subjects: list[str], on_progress=None) -> dict[str, list[Question]]:
        """Exam paper per subject. English gets the literary supplement appended."""
        papers = {}
        for loaded, subject in enumerate(subjects, start=1):
            count = EXAM_COUNTS.get(subject, DEFAULT_EXAM_COUNT)
            key = f"exam-{subject}-{count}"
            questions = await self.fetch_questions(subject, count)
            if not questions:
                questions = await self._cached(key)
            if subject == "english":
                questions = merge_unique(list(questions), literary_supplement(SUPPLEMENT_SIZE), len(questions) + SUPPLEMENT_SIZE)
            if questions:
                try:
                    await self.store.put_batch(CachedBatch(key, subject, questions, time.time()))
                except CBTError as e:
                    logger.warning("cache write for %s failed: %s", key, e)
            papers[subject] = questions[:EXAM_CAP if subject == "english" else count]
            if on_progress:
                on_progress({
                    "loaded": loaded,
                    "total": len(subjects),
                    "subject": subject_name(subject),
                    "question_count": len(papers[subject]),
                })
        return papers

    async def download_for_offline(self, subjects: list[str], on_progress=None) -> dict:
        """Pull each subject's bulk set into the store under `{subject}-offline`."""
        result = {"success": [], "failed": []}
        for done, subject in enumerate(subjects, start=1):
            try:
                questions = _normalize_all(await self.bank.fetch_bulk(subject), subject)
                if not questions:
                    raise NoQuestionsError(f"bank returned no usable {subject} questions")
                await self.store.put_batch(CachedBatch(f"{subject}-offline", subject, questions, time.time()))
            except CBTError as e:
                logger.warning("offline download of %s failed: %s", subject, e)
                result["failed"].append(subject)
            else:
                result["success"].append(subject)
            if on_progress:
                on_progress({"done": done, "total": len(subjects), "subject": subject_name(subject)})
        return result

    async def offline_question_count(self) -> dict:
        try:
            batches = await self.store.all_batches()
        except CBTError as e:
            logger.warning("cache scan failed: %s", e)
            return {"total": 0, "by_subject": {}}
        by_subject: dict[str, int] = {}
        for b in batches:
            by_subject[b.subject] = by_subject.get(b.subject, 0) + len(b.questions)
        return {"total": sum(by_subject.values()), "by_subject": by_subject}
