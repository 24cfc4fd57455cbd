"""Tests for workstate.scoring.confidence."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tests._fixtures.fakes import NOW
from workstate.models import Signal, SignalType
from workstate.scoring.confidence import ConfidenceAdjuster, source_family


def _signal(
    signal_type: SignalType = SignalType.ACTIVITY,
    source: str = "task",
    age: timedelta = timedelta(days=5),
) -> Signal:
    return Signal(signal_type, source, "evidence", 0.2, NOW - age)


@pytest.fixture
def adjuster() -> ConfidenceAdjuster:
    return ConfidenceAdjuster()


def test_no_signals_leaves_confidence_untouched(adjuster: ConfidenceAdjuster) -> None:
    assert adjuster.adjust(0.5, [], NOW) == pytest.approx(0.5)


def test_source_family_groups_variants() -> None:
    assert source_family("email_subject") == "email"
    assert source_family("Email_Body") == "email"
    assert source_family("commit") == "commit"


def test_same_family_sources_do_not_corroborate(adjuster: ConfidenceAdjuster) -> None:
    signals = [_signal(source="email_subject"), _signal(source="email_body")]

    assert adjuster.adjust(0.5, signals, NOW) == pytest.approx(0.5)


def test_corroboration_bonus(adjuster: ConfidenceAdjuster) -> None:
    two = [_signal(source="email"), _signal(source="chat")]
    three = two + [_signal(source="file_change")]

    assert adjuster.adjust(0.5, two, NOW) == pytest.approx(0.6)
    assert adjuster.adjust(0.5, three, NOW) == pytest.approx(0.65)


def test_recency_bonus(adjuster: ConfidenceAdjuster) -> None:
    assert adjuster.adjust(0.5, [_signal(age=timedelta(hours=5))], NOW) == pytest.approx(0.55)
    assert adjuster.adjust(0.5, [_signal(age=timedelta(minutes=10))], NOW) == pytest.approx(0.6)


def test_contradiction_penalty(adjuster: ConfidenceAdjuster) -> None:
    signals = [_signal(SignalType.COMPLETION), _signal(SignalType.BLOCKER)]

    assert adjuster.adjust(0.8, signals, NOW) == pytest.approx(0.65)


def test_commit_bonus(adjuster: ConfidenceAdjuster) -> None:
    assert adjuster.adjust(0.5, [_signal(source="commit")], NOW) == pytest.approx(0.55)


@pytest.mark.parametrize("source", ["git_commit", "Commit_Message"])
def test_commit_bonus_matches_any_commit_source(adjuster: ConfidenceAdjuster, source: str) -> None:
    assert adjuster.adjust(0.5, [_signal(source=source)], NOW) == pytest.approx(0.55)


def test_result_is_clamped(adjuster: ConfidenceAdjuster) -> None:
    fresh = [
        _signal(source="commit", age=timedelta(minutes=1)),
        _signal(source="email", age=timedelta(minutes=1)),
        _signal(source="chat", age=timedelta(minutes=1)),
    ]
    contradictory = [_signal(SignalType.COMPLETION), _signal(SignalType.BLOCKER)]

    assert adjuster.adjust(0.9, fresh, NOW) == pytest.approx(0.95)
    assert adjuster.adjust(0.05, contradictory, NOW) == 0.0
    assert ConfidenceAdjuster(max_confidence=0.7).adjust(0.9, [], NOW) == pytest.approx(0.7)
