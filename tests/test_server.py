# tests/test_server.py
from fastapi.testclient import TestClient

from cbt_prep.config import Settings
from cbt_prep.errors import NetworkError
from cbt_prep.models import Question
from cbt_prep.question_store import get_question_count, save_question
from cbt_prep.seed import SUBJECTS
from cbt_prep.server import create_app


def bank_item(n):
    return {"id": n, "question": f"Bank question {n}?",
            "option": {"a": "w", "b": "x", "c": "y", "d": "z"}, "answer": "b", "section": "Algebra"}


class FakeBank:
    def __init__(self, items=(), fail=False):
        self.items = [bank_item(n) for n in items]
        self.fail = fail
        self.calls = []

    async def fetch_many(self, subject, count=40, year=None):
        self.calls.append((subject, count))
        if self.fail:
            raise NetworkError("bank unreachable")
        return self.items


class FakeAI:
    def __init__(self):
        self.requested = []

    async def generate_questions(self, subject, topic=None, count=5):
        self.requested.append((subject, topic, count))
        return [Question(id=None, subject=subject, question=f"Generated {subject} {i}?",
                         options={"a": "1", "b": "2", "c": "3", "d": "4"}, answer="a",
                         topic=topic or "", is_ai_generated=True)
                for i in range(count)]


def make_client(tmp_db, bank=None, ai=None):
    app = create_app(Settings(db_path=tmp_db), bank=bank or FakeBank(), ai=ai)
    return TestClient(app)


def test_health(tmp_db):
    body = make_client(tmp_db).get("/api/health").json()
    assert body["status"] == "ok"
    assert isinstance(body["timestamp"], int)


def test_questions_requires_subject(tmp_db):
    response = make_client(tmp_db).get("/api/questions")
    assert response.status_code == 400
    assert response.json() == {"error": "Subject is required"}


def test_questions_rejects_non_positive_count(tmp_db):
    client = make_client(tmp_db, bank=FakeBank(items=range(1, 4)))
    assert client.get("/api/questions", params={"subject": "physics", "count": -1}).status_code == 422
    assert client.get("/api/questions", params={"subject": "physics", "count": 0}).status_code == 422
    assert client.post("/api/questions/sync", json={"subject": "physics", "count": 0}).status_code == 422


def test_questions_backfilled_from_bank_and_saved(tmp_db):
    bank = FakeBank(items=range(1, 6))
    client = make_client(tmp_db, bank=bank)
    body = client.get("/api/questions", params={"subject": "mathematics", "count": 5}).json()
    assert body["total"] == 5
    assert body["source"] == "database"
    assert {q["external_id"] for q in body["data"]} == {"1", "2", "3", "4", "5"}
    assert get_question_count(tmp_db, "mathematics") == 5

    again = client.get("/api/questions", params={"subject": "mathematics", "count": 5}).json()
    assert again["total"] == 5
    assert len(bank.calls) == 1


def test_questions_survive_bank_failure(tmp_db):
    client = make_client(tmp_db, bank=FakeBank(fail=True))
    save_question(tmp_db, Question(id=None, subject="physics", question="Unit of charge?",
                                   options={"a": "Coulomb", "b": "Volt"}, answer="a"))
    body = client.get("/api/questions", params={"subject": "physics", "count": 10}).json()
    assert body["total"] == 1
    assert body["data"][0]["options"] == {"a": "Coulomb", "b": "Volt", "c": "", "d": ""}


def test_ai_backfill_is_capped(tmp_db):
    ai = FakeAI()
    client = make_client(tmp_db, bank=FakeBank(items=(1, 2)), ai=ai)
    body = client.get("/api/questions", params={"subject": "biology", "count": 40, "topic": "Genetics"}).json()
    assert ai.requested == [("biology", "Genetics", 10)]
    assert body["total"] == 10


def test_generate_requires_subject_and_ai(tmp_db):
    client = make_client(tmp_db)
    assert client.post("/api/questions/generate", json={}).status_code == 400
    response = client.post("/api/questions/generate", json={"subject": "physics"})
    assert response.status_code == 400
    assert response.json() == {"error": "AI generation not available"}


def test_generate_caps_count_and_saves(tmp_db):
    ai = FakeAI()
    client = make_client(tmp_db, ai=ai)
    body = client.post("/api/questions/generate", json={"subject": "physics", "topic": "Waves", "count": 50}).json()
    assert ai.requested == [("physics", "Waves", 20)]
    assert body["count"] == 20
    assert body["message"] == "Generated 20 questions for physics"
    assert get_question_count(tmp_db, "physics") == 20


def test_sync_single_subject(tmp_db):
    bank = FakeBank(items=range(1, 4))
    body = make_client(tmp_db, bank=bank).post("/api/questions/sync", json={"subject": "economics", "count": 3}).json()
    assert body == {"message": "Sync completed", "results": {"economics": {"fetched": 3, "saved": 3}}}
    assert bank.calls == [("economics", 3)]


def test_sync_all_subjects_with_failures(tmp_db):
    body = make_client(tmp_db, bank=FakeBank(fail=True)).post("/api/questions/sync", json={}).json()
    assert set(body["results"]) == set(SUBJECTS)
    assert all(r == {"fetched": 0, "saved": 0} for r in body["results"].values())


def test_stats(tmp_db):
    client = make_client(tmp_db, bank=FakeBank(items=range(1, 4)))
    client.post("/api/questions/sync", json={"subject": "government", "count": 3})
    assert client.get("/api/stats").json() == {"subjects": {"government": 3}, "total": 3}


def test_subjects(tmp_db):
    subjects = make_client(tmp_db).get("/api/subjects").json()
    assert len(subjects) == 15
    assert subjects[0] == {"id": "english", "name": "English Language"}
