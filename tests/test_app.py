# tests/test_app.py
import asyncio
from unittest.mock import patch

import pytest

from cbt_prep.app import (
    Services, SessionExitRequested, choose_saved_novel, cmd_quick, cmd_server, show_conversation,
    run_flashcard_session, run_quiz_session, session_prompt,
)
from cbt_prep.config import Settings
from cbt_prep.flashcards import create_flashcard
from cbt_prep.models import Question


def make_questions():
    return [
        Question(id=i, subject="physics", question=f"Question {i}?",
                 options={"a": "one", "b": "two", "c": "three", "d": "four"}, answer="b")
        for i in range(3)
    ]


def test_session_prompt_raises_on_q():
    with patch("cbt_prep.app.Prompt.ask", return_value="q"):
        with pytest.raises(SessionExitRequested):
            session_prompt("Your answer", ["a", "b"])


def test_session_prompt_returns_choice():
    with patch("cbt_prep.app.Prompt.ask", return_value="b") as ask:
        assert session_prompt("Your answer", ["a", "b"]) == "b"
    assert ask.call_args.kwargs["choices"] == ["a", "b", "q"]


def test_run_quiz_session_records_answers():
    with patch("cbt_prep.app.Prompt.ask", side_effect=["b", "a", "b"]):
        answers = run_quiz_session(make_questions())
    assert answers == [("physics", True), ("physics", False), ("physics", True)]


def test_run_quiz_session_stops_on_q():
    with patch("cbt_prep.app.Prompt.ask", side_effect=["b", "q"]):
        answers = run_quiz_session(make_questions(), feedback=False)
    assert answers == [("physics", True)]


def test_run_quiz_session_empty():
    assert run_quiz_session([]) == []


def test_run_flashcard_session_exits_on_q(tmp_store):
    """Card 1 is reviewed as an easy success; 'q' on card 2's rating ends the run."""
    async def scenario():
        first = await create_flashcard(tmp_store, "biology", "cells", "Q1", "A1")
        second = await create_flashcard(tmp_store, "biology", "cells", "Q2", "A2")
        with patch("cbt_prep.app.Prompt.ask", side_effect=["", "y", "easy", "", "q"]):
            results = await run_flashcard_session(tmp_store, [first, second])
        return results, await tmp_store.get_flashcard(first.id), await tmp_store.get_flashcard(second.id)

    results, first, second = asyncio.run(scenario())
    assert results == [True]
    assert first.review_count == 1
    assert first.ease_factor == 2.65
    assert second.review_count == 0


def test_run_flashcard_session_wrong_answer_skips_difficulty(tmp_store):
    async def scenario():
        card = await create_flashcard(tmp_store, "biology", "cells", "Q1", "A1")
        with patch("cbt_prep.app.Prompt.ask", side_effect=["", "n"]):
            results = await run_flashcard_session(tmp_store, [card])
        return results, await tmp_store.get_flashcard(card.id)

    results, card = asyncio.run(scenario())
    assert results == [False]
    assert card.streak == 0
    assert card.interval == 1


class FakeSource:
    def __init__(self, question):
        self.question = question
        self.asked = []

    async def get_question(self, subject, year=None):
        self.asked.append(subject)
        return self.question


class FakeBackend:
    def __init__(self):
        self.synced = []

    async def health(self):
        return {"status": "ok", "timestamp": 1}

    async def stats(self):
        return {"subjects": {"physics": 4}, "total": 4}

    async def sync(self, subject=None, count=100):
        self.synced.append(subject)
        return {"message": "Sync completed", "results": {"physics": {"fetched": 3, "saved": 3}}}

    async def generate(self, subject, topic=None, count=10):
        return []


def test_cmd_quick_records_practice_session(tmp_store):
    source = FakeSource(make_questions()[0])
    services = Services(Settings(), tmp_store, source, ai=None)

    async def scenario():
        with patch("cbt_prep.app.Prompt.ask", side_effect=["physics", "b"]):
            await cmd_quick(services)
        return await tmp_store.get_sessions()

    sessions = asyncio.run(scenario())
    assert source.asked == ["physics"]
    assert [(s.mode, s.score) for s in sessions] == [("practice", 100)]


def test_cmd_server_sync(tmp_store):
    backend = FakeBackend()
    services = Services(Settings(), tmp_store, source=None, ai=None, backend=backend)
    with patch("cbt_prep.app.Prompt.ask", side_effect=["sync", ""]):
        asyncio.run(cmd_server(services))
    assert backend.synced == [None]


def test_choose_saved_novel(tmp_store):
    novel = {"id": "the-lekki-headmaster", "title": "The Lekki Headmaster", "author": "Kabir Alabi Garba"}

    async def scenario():
        assert await choose_saved_novel(tmp_store) is None
        await tmp_store.put_novel(novel)
        with patch("cbt_prep.app.Prompt.ask", return_value="1"):
            return await choose_saved_novel(tmp_store)

    assert asyncio.run(scenario()) == novel


def test_show_conversation_prints_saved_messages():
    class Tutor:
        async def conversation_history(self):
            return [{"role": "user", "content": "What is inertia?"}]

    with patch("cbt_prep.app.console.print") as printed:
        asyncio.run(show_conversation(Tutor()))
    assert "What is inertia?" in printed.call_args.args[0]
