"""Tests for workstate.router."""

from __future__ import annotations

import io
from datetime import timedelta
from urllib.error import HTTPError

import pytest

from tests._fixtures.fakes import NOW, EchoTransport, FailingTransport, RecordingSleep, prompted_unit_ids
from workstate.budget import TokenBudget
from workstate.classifier import ModelClassifier
from workstate.llm.client import ModelClient
from workstate.llm.errors import AuthenticationError
from workstate.models import ProgressState, Signal, SignalType
from workstate.retry import RetryPolicy
from workstate.router import HybridRouter, has_contradiction
from workstate.signals.aggregator import SignalAggregator


def _router(transport=None, **kwargs) -> HybridRouter:
    classifier = None
    if transport is not None:
        classifier = ModelClassifier(ModelClient(api_key="secret", transport=transport))
    kwargs.setdefault("sleep", RecordingSleep())
    return HybridRouter(classifier, **kwargs)


def _http_failure(status: int) -> FailingTransport:
    return FailingTransport(
        lambda request: HTTPError(request.full_url, status, "error", None, io.BytesIO(b""))
    )


@pytest.fixture
def confident(make_unit):
    return make_unit("u1", "Deployed the release", source="commit")


@pytest.fixture
def ambiguous(make_unit):
    return make_unit("u2", "Untitled")


def test_only_ambiguous_units_reach_the_model(confident, ambiguous) -> None:
    transport = EchoTransport(state="in_progress", confidence=0.8)

    result = _router(transport).route([confident, ambiguous], now=NOW)

    assert result.escalated == ["u2"]
    assert result.model_calls == 1
    assert prompted_unit_ids(transport.requests[0]) == ["u2"]
    assert result.scores["u1"].model_used == "heuristic"
    assert result.scores["u1"].state is ProgressState.DONE
    assert result.scores["u1"].confidence == pytest.approx(0.95)
    assert result.scores["u2"].model_used == "openai/gpt-5.2-nano"
    assert result.scores["u2"].state is ProgressState.IN_PROGRESS
    assert result.usage.total_tokens == 100


def test_contradictions_escalate_despite_confidence(make_unit) -> None:
    unit = make_unit("u1", "Merged the fix but blocked by QA", source="commit")

    result = _router().route([unit], now=NOW)

    assert result.scores["u1"].confidence >= 0.6
    assert result.escalated == ["u1"]
    assert result.scores["u1"].model_used == "heuristic"


def test_non_hybrid_mode_escalates_everything(confident, ambiguous) -> None:
    transport = EchoTransport()

    result = _router(transport).route([confident, ambiguous], now=NOW, hybrid=False)

    assert result.escalated == ["u1", "u2"]
    assert sorted(prompted_unit_ids(transport.requests[0])) == ["u1", "u2"]


def test_model_can_be_disabled_per_call(ambiguous) -> None:
    transport = EchoTransport()

    result = _router(transport).route([ambiguous], now=NOW, allow_model=False)

    assert transport.calls == 0
    assert result.escalated == ["u2"]
    assert result.scores["u2"].state is ProgressState.NOT_STARTED
    assert result.scores["u2"].last_activity_at == ambiguous.updated_at


def test_failed_batches_fall_back_to_discounted_heuristics(confident, ambiguous) -> None:
    transport = _http_failure(500)
    sleep = RecordingSleep()
    router = _router(transport, sleep=sleep, retry_policy=RetryPolicy(max_attempts=3))
    expected = router.heuristic_score(confident, router.aggregator.aggregate(confident, now=NOW), NOW)

    result = router.analyze_batch_with_fallback([confident, ambiguous], now=NOW, hybrid=False)

    assert transport.calls == 3
    assert len(sleep.delays) == 2
    assert result.model_calls == 0
    assert result.fallback_units == ["u1", "u2"]
    assert len(result.errors) == 1
    fallback = result.scores["u1"]
    assert fallback.model_used == "heuristic_fallback"
    assert fallback.state is expected.state
    assert fallback.confidence == pytest.approx(expected.confidence * 0.85)
    assert "heuristic fallback" in fallback.reasoning


def test_failed_hybrid_batch_discounts_confident_units_too(confident, ambiguous) -> None:
    router = _router(_http_failure(500))
    expected = {
        unit.id: router.heuristic_score(unit, router.aggregator.aggregate(unit, now=NOW), NOW)
        for unit in (confident, ambiguous)
    }

    result = router.analyze_batch_with_fallback([confident, ambiguous], now=NOW)

    assert result.escalated == ["u2"]
    assert result.fallback_units == ["u1", "u2"]
    assert result.scores["u1"].confidence == pytest.approx(0.95 * 0.85)
    for unit_id, heuristic in expected.items():
        score = result.scores[unit_id]
        assert score.model_used == "heuristic_fallback"
        assert score.state is heuristic.state
        assert score.confidence == pytest.approx(heuristic.confidence * 0.85)


def test_answered_batches_survive_a_later_failure(make_unit) -> None:
    answered = EchoTransport(state="in_progress", confidence=0.8)
    failing = _http_failure(503)
    calls = []

    def transport(request, timeout):
        calls.append(request)
        if len(calls) == 1:
            return answered(request, timeout)
        return failing(request, timeout)

    units = [make_unit("u1"), make_unit("u2")]
    router = _router(transport, batch_size=1, retry_policy=RetryPolicy(max_attempts=1))

    result = router.analyze_batch_with_fallback(units, now=NOW)

    assert result.scores["u1"].model_used == "openai/gpt-5.2-nano"
    assert result.scores["u2"].model_used == "heuristic_fallback"
    assert result.fallback_units == ["u2"]
    assert result.model_calls == 1


def test_confident_corpus_keeps_model_calls_low(make_unit) -> None:
    confident_titles = [
        "Deployed the release",
        "Merged the fix",
        "Shipped the dashboard",
        "Completed the migration",
        "Released version 2",
        "Resolved the login bug",
    ]
    units = [
        make_unit(f"c{index}", title, source="commit")
        for index, title in enumerate(confident_titles)
    ]
    units += [make_unit(f"a{index}") for index in range(4)]
    transport = EchoTransport(state="in_progress", confidence=0.8)

    result = _router(transport, batch_size=1).route(units, now=NOW)

    assert sorted(result.escalated) == ["a0", "a1", "a2", "a3"]
    assert transport.calls == 4
    assert transport.calls / len(units) <= 0.4
    for index in range(len(confident_titles)):
        assert result.scores[f"c{index}"].model_used == "heuristic"


def test_route_propagates_model_failures(ambiguous) -> None:
    transport = _http_failure(401)

    with pytest.raises(AuthenticationError):
        _router(transport).route([ambiguous], now=NOW)
    assert transport.calls == 1


def test_exhausted_budget_keeps_heuristic_scores(ambiguous) -> None:
    transport = EchoTransport()
    budget = TokenBudget(100, today=NOW.date())
    budget.record(100, NOW)

    result = _router(transport, budget=budget).route([ambiguous], now=NOW)

    assert transport.calls == 0
    assert result.model_calls == 0
    assert result.scores["u2"].model_used == "heuristic"


def test_budget_is_checked_before_each_batch(make_unit) -> None:
    transport = EchoTransport(prompt_tokens=70, completion_tokens=30)
    budget = TokenBudget(150, today=NOW.date())
    units = [make_unit(f"u{index}") for index in range(3)]

    result = _router(transport, budget=budget, batch_size=1).route(units, now=NOW)

    assert transport.calls == 2
    assert result.model_calls == 2
    assert budget.used == 200
    assert result.scores["u2"].model_used == "heuristic"


def test_rejected_model_answers_keep_heuristic_score(make_unit) -> None:
    transport = EchoTransport(overrides={"u2": {"state": "paused"}})
    units = [make_unit("u1"), make_unit("u2")]

    result = _router(transport).route(units, now=NOW)

    assert result.scores["u1"].model_used == "openai/gpt-5.2-nano"
    assert result.scores["u2"].model_used == "heuristic"
    assert result.model_calls == 1


def test_aggregation_errors_score_without_signals(ambiguous) -> None:
    class _BrokenAggregator(SignalAggregator):
        def aggregate(self, unit, related_units=(), *, now=None):
            raise ValueError("bad input")

    result = _router(aggregator=_BrokenAggregator()).route([ambiguous], now=NOW)

    assert result.signals["u2"] == []
    assert result.scores["u2"].reasoning == "insufficient signals"


def _signals(*types: SignalType) -> list[Signal]:
    return [Signal(kind, "task", kind.value, detected_at=NOW - timedelta(days=1)) for kind in types]


def test_has_contradiction() -> None:
    assert has_contradiction(_signals(SignalType.COMPLETION, SignalType.BLOCKER))
    assert has_contradiction(_signals(SignalType.COMMITMENT, SignalType.ESCALATION))
    assert not has_contradiction(
        _signals(SignalType.COMMITMENT, SignalType.ESCALATION, SignalType.ACTIVITY)
    )
    assert not has_contradiction(_signals(SignalType.COMPLETION, SignalType.ACTIVITY))
    assert not has_contradiction([])
