# tests/test_seed.py
from cbt_prep.seed import SUBJECTS, literary_supplement, subject_name


def test_subjects():
    assert len(SUBJECTS) == 15
    assert subject_name("crk") == "Christian Religious Studies"
    assert subject_name("unknown") == "unknown"


def test_literary_supplement_is_valid_english():
    questions = literary_supplement()
    assert len(questions) == 15
    assert len({q.id for q in questions}) == 15
    for q in questions:
        q.validate()
        assert q.subject == "english"
        assert q.topic.startswith("Literature")


def test_literary_supplement_count():
    assert len(literary_supplement(10)) == 10
