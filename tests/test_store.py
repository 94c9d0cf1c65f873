from __future__ import annotations

import json

import pytest

from attempt_core.errors import ActiveAttemptExists, AttemptNotFound
from attempt_core.store import AttemptStore
from attempt_core.types import SUBMITTED, Answer, AssessmentAttempt


def _new(attempt_id: str, student: str = "s1", paper: str = "P1") -> AssessmentAttempt:
    return AssessmentAttempt(id=attempt_id, paper_id=paper, student_id=student, started_at=f"2026-01-01T00:00:0{attempt_id[-1]}")


def test_create_claims_active_slot():
    store = AttemptStore()
    store.create(_new("a1"))
    with pytest.raises(ActiveAttemptExists) as exc:
        store.create(_new("a2"))
    assert exc.value.existing_id == "a1"
    # other papers and other students are independent
    store.create(_new("a3", paper="P2"))
    store.create(_new("a4", student="s2"))
    assert store.find_in_progress("s1", "P1").id == "a1"


def test_submit_frees_slot_and_status_is_one_way():
    store = AttemptStore()
    store.create(_new("a1"))

    def finish(a):
        a.status = SUBMITTED

    store.update("a1", finish)
    assert store.find_in_progress("s1", "P1") is None
    store.create(_new("a2"))

    def reopen(a):
        a.status = "in_progress"

    with pytest.raises(ValueError):
        store.update("a1", reopen)
    assert store.get("a1").status == SUBMITTED


def test_update_aborts_cleanly():
    store = AttemptStore()
    store.create(_new("a1"))

    def half_then_fail(a):
        a.answers["q1"] = Answer("q1", selected_index=0)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.update("a1", half_then_fail)
    assert store.get("a1").answers == {}

    def noop(a):
        a.time_used_seconds = 99
        return False

    assert store.update("a1", noop).time_used_seconds == 0
    with pytest.raises(AttemptNotFound):
        store.update("missing", noop)


def test_readers_get_copies():
    store = AttemptStore()
    store.create(_new("a1"))
    snap = store.get("a1")
    snap.answers["q1"] = Answer("q1", selected_index=2)
    assert store.get("a1").answers == {}


def test_persistence_round_trip(tmp_path):
    store = AttemptStore(tmp_path)
    store.create(_new("a1"))
    store.create(_new("a2", paper="P2"))
    store.update("a1", lambda a: a.answers.update({"q1": Answer("q1", text_answer="osmosis")}))
    store.update("a2", lambda a: setattr(a, "status", SUBMITTED))

    on_disk = json.loads((tmp_path / "attempts" / "a1.json").read_text(encoding="utf-8"))
    assert on_disk["answers"][0]["textAnswer"] == "osmosis"
    assert not list((tmp_path / "attempts").glob("*.tmp"))

    reloaded = AttemptStore(tmp_path)
    assert reloaded.find_in_progress("s1", "P1").answers["q1"].text_answer == "osmosis"
    assert reloaded.find_in_progress("s1", "P2") is None
    with pytest.raises(ActiveAttemptExists):
        reloaded.create(_new("a3"))


def test_list_filters_and_orders_newest_first():
    store = AttemptStore()
    store.create(_new("a1"))
    store.create(_new("a2", paper="P2"))
    store.create(_new("a3", student="s2"))
    assert [a.id for a in store.list(student_id="s1")] == ["a2", "a1"]
    assert [a.id for a in store.list(paper_id="P1")] == ["a3", "a1"]
    assert store.list(status=SUBMITTED) == []


def test_lock_tables_only_track_stored_attempts():
    store = AttemptStore()
    for n in range(3):
        with pytest.raises(AttemptNotFound):
            store.update(f"missing{n}", lambda a: None)
    assert store._attempt_locks == {}
    store.create(_new("a1"))
    store.update("a1", lambda a: setattr(a, "time_used_seconds", 5))
    store.update("a1", lambda a: setattr(a, "status", SUBMITTED))
    assert set(store._attempt_locks) == {"a1"}
    assert set(store._key_locks) == {("s1", "P1")}
