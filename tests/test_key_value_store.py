from __future__ import annotations

import json

import pytest

from quiz_session.core.services.key_value_store import InMemoryKeyValueStore, QSettingsKeyValueStore
from quiz_session.core.services.progress_store import ProgressStore


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "nested" / "store.ini"


def test_in_memory_store_basics():
    store = InMemoryKeyValueStore({"a": "1"})
    store.set("b", "2")
    store.remove("a")
    store.remove("missing")

    assert store.get("a") is None
    assert store.get("b") == "2"
    assert store.keys() == ["b"]


def test_qsettings_store_creates_its_directory(store_path):
    store = QSettingsKeyValueStore(store_path)
    store.set("quiz_global_deadline", "1700000000000")

    assert store.file_path == store_path
    assert store_path.exists()


def test_qsettings_store_round_trips_json_with_commas(store_path):
    payload = json.dumps({"index": 2, "answers": [0, -1, None], "remaining": 7})
    store = QSettingsKeyValueStore(store_path)
    store.set("progress_HTML", payload)

    assert store.get("progress_HTML") == payload
    assert json.loads(store.get("progress_HTML"))["answers"] == [0, -1, None]


def test_qsettings_store_survives_a_restart(store_path):
    first = QSettingsKeyValueStore(store_path)
    first.set("progress_React", '{"index": 1}')
    first.set("correct_React", "4")
    first.remove("correct_React")

    second = QSettingsKeyValueStore(store_path)

    assert second.get("progress_React") == '{"index": 1}'
    assert second.get("correct_React") is None
    assert sorted(second.keys()) == ["progress_React"]


def test_progress_store_over_qsettings(store_path, clock):
    progress_store = ProgressStore(QSettingsKeyValueStore(store_path), clock)
    progress_store.bump_correct_count("HTML")
    progress_store.bump_correct_count("HTML")

    reopened = ProgressStore(QSettingsKeyValueStore(store_path), clock)

    assert reopened.get_correct_count("HTML") == 2
