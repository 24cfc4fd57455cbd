"""Tests for the in-memory and JSON score stores."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

from tests._fixtures.fakes import NOW
from workstate.models import ClassificationScore, CostLogEntry, ProgressState
from workstate.stores import InMemoryScoreStore, JsonScoreStore


def _score(unit_id: str, state: ProgressState = ProgressState.IN_PROGRESS, **kwargs) -> ClassificationScore:
    kwargs.setdefault("inferred_at", NOW - timedelta(days=1))
    return ClassificationScore(
        unit_id=unit_id,
        state=state,
        confidence=0.7,
        reasoning="test",
        model_used="heuristic",
        **kwargs,
    )


def test_pending_units_are_unanalyzed_or_updated(make_unit) -> None:
    fresh = make_unit("fresh", age=timedelta(hours=1))
    analyzed = make_unit("analyzed", age=timedelta(days=2))
    updated = make_unit("updated", age=timedelta(hours=3))
    store = InMemoryScoreStore([fresh, analyzed, updated])
    store.mark_analyzed("analyzed", NOW - timedelta(days=1))
    store.mark_analyzed("updated", NOW - timedelta(days=1))

    pending = store.get_pending_units(10)

    assert [unit.id for unit in pending] == ["fresh", "updated"]
    assert [unit.id for unit in store.get_pending_units(1)] == ["fresh"]


def test_overridden_units_wait_for_new_content(make_unit) -> None:
    unit = make_unit("u1", age=timedelta(days=2))
    store = InMemoryScoreStore([unit])
    store.store_score(_score("u1", is_manual_override=True, inferred_at=NOW - timedelta(days=1)))

    assert store.get_pending_units(10) == []

    store.upsert_unit(make_unit("u1", "new text", age=timedelta(hours=1)))

    assert [item.id for item in store.get_pending_units(10)] == ["u1"]


def test_related_units_match_ticket_or_external_id(make_unit) -> None:
    store = InMemoryScoreStore(
        [
            make_unit("a", ticket_ids=["PROJ-1"]),
            make_unit("b", external_id="proj-1"),
            make_unit("c", ticket_ids=["PROJ-2"]),
        ]
    )

    assert sorted(unit.id for unit in store.get_related_units("PROJ-1")) == ["a", "b"]


def test_store_score_keeps_identity_and_indexes_state() -> None:
    store = InMemoryScoreStore()
    first = _score("u1")
    store.store_score(first)
    second = _score("u1", ProgressState.DONE)

    store.store_score(second)

    assert store.get_score("u1").id == first.id
    assert store.get_units_in_state(ProgressState.DONE) == ["u1"]
    assert store.get_units_in_state(ProgressState.IN_PROGRESS) == []


def test_token_usage_is_summed_per_day() -> None:
    store = InMemoryScoreStore()
    store.log_cost(CostLogEntry(NOW, 2, 300, "m"))
    store.log_cost(CostLogEntry(NOW - timedelta(hours=2), 1, 200, "m"))
    store.log_cost(CostLogEntry(NOW - timedelta(days=1), 4, 900, "m"))

    assert store.get_token_usage(NOW.date()) == 500
    assert store.get_token_usage((NOW - timedelta(days=1)).date()) == 900


def test_json_store_round_trips(tmp_path: Path, make_unit) -> None:
    path = tmp_path / "state" / "scores.json"
    store = JsonScoreStore(path)
    store.upsert_unit(make_unit("u1", "Login", ticket_ids=["PROJ-1"]))
    store.store_score(_score("u1", ProgressState.BLOCKED))
    store.mark_analyzed("u1", NOW)
    store.log_cost(CostLogEntry(NOW, 1, 120, "openai/gpt-5.2-nano", 0.0001))
    assert store.dirty

    store.persist()

    assert not store.dirty
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == 1
    reloaded = JsonScoreStore(path)
    assert reloaded.get_unit("u1").ticket_ids == ["PROJ-1"]
    assert reloaded.get_score("u1").state is ProgressState.BLOCKED
    assert reloaded.analyzed_at("u1") == NOW
    assert reloaded.get_token_usage(NOW.date()) == 120
    assert reloaded.get_pending_units(10) == []


def test_json_store_skips_write_when_clean(tmp_path: Path) -> None:
    path = tmp_path / "scores.json"

    JsonScoreStore(path).persist()

    assert not path.exists()


def test_json_store_ignores_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "scores.json"
    path.write_text("{not json", encoding="utf-8")

    store = JsonScoreStore(path)

    assert store.units() == []


def test_json_store_ignores_unknown_version(tmp_path: Path) -> None:
    path = tmp_path / "scores.json"
    path.write_text(json.dumps({"version": 99, "units": [{"id": "u1"}]}), encoding="utf-8")

    assert JsonScoreStore(path).units() == []


def test_json_store_skips_malformed_entries(tmp_path: Path) -> None:
    path = tmp_path / "scores.json"
    payload = {
        "version": 1,
        "units": [{"id": "u1", "title": "ok"}, {"title": "no id"}, "junk"],
        "scores": [{"unit_id": "u1", "state": "paused"}],
        "analyzed": {"u1": "not a date"},
        "cost_log": [{"tokens_used": "many"}],
    }
    path.write_text(json.dumps(payload), encoding="utf-8")

    store = JsonScoreStore(path)

    assert [unit.id for unit in store.units()] == ["u1"]
    assert store.scores() == []
    assert store.analyzed_at("u1") is None
    assert store.cost_entries() == []
