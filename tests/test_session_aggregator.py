from __future__ import annotations

import pytest

from conftest import START_MILLIS, build_bank
from quiz_session.core.credential_window import CredentialWindow
from quiz_session.core.models import SessionPhase, SessionState
from quiz_session.core.services.session_aggregator import SessionAggregator

DEADLINE_MILLIS = 30 * 60 * 1000


@pytest.fixture
def banks():
    return {"HTML": build_bank("HTML"), "React": build_bank("React")}


@pytest.fixture
def aggregator(progress_store, score_store, banks, timers, clock):
    return SessionAggregator(progress_store, score_store, banks, timers, clock=clock)


def save_progress(progress_store, topic, index, correct, penalties):
    answers = [0] * index + [None] * (20 - index)
    progress_store.save(
        topic,
        SessionState(
            current_index=index,
            answers=answers,
            remaining_seconds=7,
            penalties=penalties,
            started_at_millis=START_MILLIS,
        ),
    )
    for _ in range(correct):
        progress_store.bump_correct_count(topic)
    progress_store.get_or_create_global_deadline(30)


def test_tick_without_deadline_reports_nothing(aggregator):
    status = aggregator.tick()
    assert status.remaining_seconds is None
    assert status.expired is False


def test_tick_reports_remaining_seconds_rounded_up(aggregator, progress_store, clock):
    progress_store.get_or_create_global_deadline(30)
    clock.advance(1500)

    assert aggregator.tick().remaining_seconds == 1799


def test_expiry_finalizes_every_topic_from_stored_progress(aggregator, progress_store, score_store, clock):
    save_progress(progress_store, "HTML", index=5, correct=4, penalties=1)
    save_progress(progress_store, "React", index=2, correct=2, penalties=0)
    deadline_during_writes = []
    original_save_attempt = score_store.save_attempt

    def recording_save_attempt(*args, **kwargs):
        deadline_during_writes.append(progress_store.get_global_deadline() is not None)
        return original_save_attempt(*args, **kwargs)

    score_store.save_attempt = recording_save_attempt
    clock.advance(DEADLINE_MILLIS)

    status = aggregator.tick()

    assert status.expired is True
    assert status.remaining_seconds == 0
    assert {o.topic: (o.score, o.timed_out) for o in status.finalized} == {
        "HTML": (3, True),
        "React": (2, True),
    }
    assert all(o.taken_seconds == 1800 for o in status.finalized)
    assert deadline_during_writes == [True, True]
    assert progress_store.list_topics_with_progress() == set()
    assert progress_store.get_global_deadline() is None
    assert score_store.get_attempts("HTML")[0].timed_out is True
    assert score_store.get_score("React").score == 2


def test_expiry_goes_through_a_live_engine(aggregator, make_engine, banks, progress_store, clock):
    engine = make_engine(banks["HTML"])
    engine.select(0)
    engine.advance()
    aggregator.attach(engine)
    clock.advance(DEADLINE_MILLIS)

    status = aggregator.tick()

    assert engine.phase is SessionPhase.FINISHED
    assert engine.outcome == status.finalized[0]
    assert engine.outcome.timed_out is True
    assert engine.outcome.score == 1


def test_repeated_finalization_is_a_no_op(aggregator, progress_store, score_store, clock):
    save_progress(progress_store, "HTML", index=1, correct=1, penalties=0)
    clock.advance(DEADLINE_MILLIS)
    aggregator.tick()

    assert aggregator.finalize_expired() == []
    assert aggregator.tick().remaining_seconds is None
    assert len(score_store.get_attempts("HTML")) == 1


def test_expiry_with_no_progress_just_clears_the_deadline(aggregator, progress_store, clock):
    progress_store.get_or_create_global_deadline(30)
    clock.advance(DEADLINE_MILLIS)
    seen = []
    aggregator.add_listener(seen.append)

    status = aggregator.tick()

    assert status.expired is True and status.finalized == ()
    assert seen == [status]
    assert progress_store.get_global_deadline() is None


def test_unknown_topic_uses_its_answer_count_as_total(aggregator, progress_store, clock):
    progress_store.save("CSS", SessionState(current_index=1, answers=[0, None, None], remaining_seconds=5))
    progress_store.bump_correct_count("CSS")
    progress_store.get_or_create_global_deadline(30)
    clock.advance(DEADLINE_MILLIS)

    outcome = aggregator.tick().finalized[0]

    assert (outcome.topic, outcome.score, outcome.total) == ("CSS", 1, 3)
    assert outcome.taken_seconds == 0


def test_session_score_uses_best_attempt_inside_the_window(aggregator, score_store):
    window = CredentialWindow(issued_at_millis=1_000, expires_at_millis=5_000)
    score_store.save_attempt("HTML", 19, 20, 500, 10, False)
    score_store.save_attempt("HTML", 7, 20, 1_000, 10, False)
    score_store.save_attempt("HTML", 12, 20, 3_000, 10, True)
    score_store.save_attempt("HTML", 20, 20, 5_001, 10, False)
    score_store.save_attempt("React", 9, 20, 5_000, 10, False)

    assert aggregator.session_score(window) == 12 + 9
    assert aggregator.session_score(CredentialWindow.unbounded()) == 20 + 9
    assert aggregator.session_score(window, topics=["React"]) == 9


def test_session_attempts_filters_history_by_window(aggregator, score_store):
    window = CredentialWindow(issued_at_millis=2_000)
    score_store.save_attempt("HTML", 5, 20, 1_000, 10, False)
    score_store.save_attempt("HTML", 6, 20, 3_000, 10, False)

    history = aggregator.session_attempts(window)

    assert [a.score for a in history["HTML"]] == [6]
    assert history["React"] == []


def test_topic_progress_estimates_remaining_time(aggregator, progress_store):
    save_progress(progress_store, "HTML", index=3, correct=2, penalties=0)

    progress = aggregator.topic_progress("HTML")

    assert progress.answered == 3
    assert progress.correct == 2
    assert progress.total == 20
    assert progress.estimated_remaining_seconds == 7 + 16 * 12
    assert aggregator.topic_progress("React") is None


def test_start_and_stop_own_the_global_tick(aggregator, progress_store, timers, clock):
    progress_store.get_or_create_global_deadline(30)
    aggregator.start()
    aggregator.start()
    assert len(timers.active_handles()) == 1
    assert aggregator.last_status.remaining_seconds == 1800

    timers.advance(10)
    assert aggregator.last_status.remaining_seconds == 1790

    aggregator.stop()
    assert not aggregator.is_running()
    assert timers.active_handles() == []


def test_unreadable_blobs_are_left_off_the_summaries(aggregator, backend, score_store):
    backend.set("progress_HTML", "{not json")
    backend.set("attempts_React", "[broken")
    score_store.save_attempt("HTML", 11, 20, START_MILLIS, 10, False)

    assert aggregator.topic_progress("HTML") is None
    assert aggregator.session_score(CredentialWindow.unbounded()) == 11
    assert aggregator.session_attempts(CredentialWindow.unbounded())["React"] == []
