from __future__ import annotations

import pytest

from conftest import START_MILLIS
from quiz_session.core.models import Attempt, ScoreSnapshot
from quiz_session.core.services.key_value_store import StoreError


def test_save_score_overwrites_the_snapshot(score_store, clock):
    score_store.save_score("HTML", 12, 20)
    clock.advance(1000)
    score_store.save_score("HTML", 15, 20)

    assert score_store.get_score("HTML") == ScoreSnapshot(15, 20, START_MILLIS + 1000)
    assert score_store.get_score("React") is None


def test_format_score(score_store):
    score_store.save_score("HTML", 8, 10)

    assert score_store.format_score("HTML") == "8/10"
    assert score_store.format_score("React") == "Not rated"


def test_get_all_scores_keeps_topics_apart(score_store):
    score_store.save_score("HTML", 1, 20)
    score_store.save_score("React", 2, 20)

    scores = score_store.get_all_scores()
    assert {topic: snap.score for topic, snap in scores.items()} == {"HTML": 1, "React": 2}


def test_attempts_are_returned_newest_first_and_paged(score_store):
    for score in range(5):
        score_store.save_attempt("HTML", score, 20, START_MILLIS + score, taken_seconds=60, timed_out=False)

    attempts = score_store.get_attempts("HTML", limit=3)

    assert [a.score for a in attempts] == [4, 3, 2]
    assert len(score_store.get_attempts("HTML")) == 5
    assert score_store.get_attempts("React") == []


def test_attempt_fields_survive_storage(score_store):
    saved = score_store.save_attempt("HTML", 3, 20, START_MILLIS, taken_seconds=1801, timed_out=True)

    assert score_store.get_attempts("HTML") == [saved]
    assert saved == Attempt(3, 20, START_MILLIS, 1801, True)


def test_negative_limit_is_rejected(score_store):
    with pytest.raises(ValueError):
        score_store.get_attempts("HTML", limit=-1)


def test_clear_all_removes_scores_and_history(score_store, backend):
    score_store.save_score("HTML", 1, 20)
    score_store.save_attempt("HTML", 1, 20, START_MILLIS, 10, False)
    score_store.save_attempt("React", 2, 20, START_MILLIS, 10, True)

    score_store.clear_all()

    assert score_store.get_all_scores() == {}
    assert score_store.get_attempts("HTML") == []
    assert score_store.get_attempts("React") == []
    assert backend.keys() == []


def test_corrupt_scores_blob_raises(score_store, backend):
    backend.set("quiz_scores", "not json")
    with pytest.raises(StoreError):
        score_store.get_score("HTML")
