"""Tests for workstate.signals.aggregator."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tests._fixtures.fakes import NOW
from workstate.models import Signal, SignalType
from workstate.signals.aggregator import SignalAggregator


@pytest.fixture
def aggregator() -> SignalAggregator:
    return SignalAggregator()


def test_title_signals_are_weighted_up(aggregator: SignalAggregator, make_unit) -> None:
    unit = make_unit("u1", "Deployed the release", source="commit")

    signals = aggregator.aggregate(unit, now=NOW)

    assert len(signals) == 1
    assert signals[0].type is SignalType.COMPLETION
    assert signals[0].weight == pytest.approx(0.4 * 1.3 * 1.2)
    assert signals[0].related_item_id == "u1"
    assert signals[0].detected_at == unit.updated_at


def test_recent_signals_get_recency_boost(aggregator: SignalAggregator, make_unit) -> None:
    unit = make_unit("u1", "Deployed the release", source="commit", age=timedelta(hours=1))

    signals = aggregator.aggregate(unit, now=NOW)

    assert signals[0].weight == pytest.approx(0.4 * 1.3 * 1.2 * 1.2)


def test_future_signals_are_not_boosted(aggregator: SignalAggregator) -> None:
    future = Signal(SignalType.ACTIVITY, "chat", "working on it", 0.2, NOW + timedelta(hours=2))

    boosted = aggregator.apply_recency_boost([future], NOW)

    assert boosted[0].weight == pytest.approx(0.2)


def test_related_units_keep_their_own_source(aggregator: SignalAggregator, make_unit) -> None:
    unit = make_unit("u1", "Login page", ticket_ids=["PROJ-1"])
    commit = make_unit(
        "c1",
        "Merged PROJ-1 login form",
        source="commit",
        external_id="abc123",
        age=timedelta(hours=2),
    )

    signals = aggregator.aggregate(unit, [commit, unit], now=NOW)

    assert len(signals) == 1
    assert signals[0].source == "commit"
    assert signals[0].related_item_id == "abc123"
    assert signals[0].detected_at == commit.updated_at


def test_duplicate_contexts_keep_the_strongest(aggregator: SignalAggregator, make_unit) -> None:
    unit = make_unit("u1", "Waiting on legal", "Waiting on legal", source="email")

    signals = aggregator.aggregate(unit, now=NOW)

    assert len(signals) == 1
    assert signals[0].weight == pytest.approx(0.36)


def test_each_type_is_capped(aggregator: SignalAggregator) -> None:
    words = ["alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf", "hotel"]
    signals = [
        Signal(SignalType.ACTIVITY, "chat", f"{word} is underway", 0.1 + index / 100, NOW)
        for index, word in enumerate(words)
    ]

    summarized = aggregator.summarize(signals)

    assert len(summarized) == 5
    assert {signal.context.split()[0] for signal in summarized} == set(words[3:])


def test_summary_is_most_recent_first(aggregator: SignalAggregator) -> None:
    older = Signal(SignalType.COMPLETION, "commit", "merged", 0.5, NOW - timedelta(days=2))
    newer = Signal(SignalType.BLOCKER, "email", "waiting on review", 0.3, NOW - timedelta(hours=3))

    summarized = aggregator.summarize([older, newer])

    assert summarized == [newer, older]


def test_unit_without_text_has_no_signals(aggregator: SignalAggregator, make_unit) -> None:
    assert aggregator.aggregate(make_unit("u1", ""), now=NOW) == []


def test_email_replies_count_as_activity(aggregator: SignalAggregator, make_unit) -> None:
    unit = make_unit("u1", "Re: deploy status", source="email")

    signals = aggregator.aggregate(unit, now=NOW)

    assert [signal.type for signal in signals] == [SignalType.ACTIVITY]
    assert signals[0].weight == pytest.approx(0.14)
    assert signals[0].source == "email"
    assert signals[0].related_item_id == "u1"


@pytest.mark.parametrize("source", ["commit", "git_commit"])
def test_conventional_commit_prefix_counts_as_completion(
    aggregator: SignalAggregator, make_unit, source: str
) -> None:
    unit = make_unit("u1", "fix: handle null token", source=source)

    signals = aggregator.aggregate(unit, now=NOW)

    assert [signal.type for signal in signals] == [SignalType.COMPLETION]
    assert signals[0].weight == pytest.approx(0.52)
    assert signals[0].source == source


def test_chat_mentions_and_questions(aggregator: SignalAggregator, make_unit) -> None:
    unit = make_unit("u1", "Login page", "@dana can you review the PR?", source="chat")

    signals = aggregator.aggregate(unit, now=NOW)

    by_type = {signal.type: signal for signal in signals}
    assert set(by_type) == {SignalType.ACTIVITY, SignalType.BLOCKER}
    assert by_type[SignalType.BLOCKER].context == "Login page @dana can you review the PR?"
