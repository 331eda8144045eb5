"""Tests for the follow-up decision policy."""

from datetime import datetime, timezone

import pytest

from src.domain.models.answer_signals import SignalCategory, SignalResult
from src.domain.models.conversation import ConversationContext
from src.domain.models.cost import CostEntry
from src.domain.models.turn import TurnAction
from src.services.follow_up_policy import FollowUpPolicy

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

LONG_ANSWER = "A concorrência lançou um produto parecido e estamos preocupados"


def _session(used=0, maximum=3):
    return ConversationContext(
        session_id="s1",
        created_at=NOW,
        last_updated=NOW,
        dynamic_follow_ups_used=used,
        max_follow_ups=maximum,
    )


def _signal(confidence=0.7, category=SignalCategory.COMPETITION):
    return SignalResult(
        has_signals=category != SignalCategory.NONE,
        category=category,
        keywords=["concorrência"],
        match_count=2,
        confidence=confidence,
        reasoning="Competitive pressure detected (keywords: concorrência).",
    )


@pytest.fixture
def policy(ledger):
    return FollowUpPolicy(ledger)


class TestDecide:
    def test_approves_strong_signal(self, policy):
        decision = policy.decide(_session(), LONG_ANSWER, _signal())

        assert decision.action == TurnAction.ASK_FOLLOW_UP
        assert decision.should_follow_up is True
        assert decision.reason == "Competitive pressure detected (keywords: concorrência)."
        assert decision.budget_denied is False

    @pytest.mark.parametrize("confidence", [0.5, 0.7, 0.9, 1.0])
    def test_exhausted_budget_always_uses_pool(self, policy, confidence):
        decision = policy.decide(_session(used=3, maximum=3), LONG_ANSWER, _signal(confidence))

        assert decision.action == TurnAction.USE_POOL_QUESTION
        assert decision.reason == "Follow-up budget exhausted (3/3 dynamic follow-ups used)"

    def test_no_signal(self, policy):
        decision = policy.decide(
            _session(), LONG_ANSWER, _signal(0.0, SignalCategory.NONE)
        )

        assert decision.action == TurnAction.USE_POOL_QUESTION
        assert decision.reason == "No interesting signal detected"

    def test_nineteen_characters_too_short(self, policy):
        decision = policy.decide(_session(), "concorrência forte!", _signal())

        assert decision.reason == "Answer too short or vague for follow-up"

    def test_twenty_characters_enough(self, policy):
        decision = policy.decide(_session(), "concorrência fortes!", _signal())

        assert decision.should_follow_up is True

    def test_low_confidence(self, policy):
        decision = policy.decide(_session(), LONG_ANSWER, _signal(0.5))

        assert decision.action == TurnAction.USE_POOL_QUESTION
        assert decision.reason == "Signal confidence too low (0.5)"

    def test_confidence_at_threshold_accepted(self, policy):
        assert policy.decide(_session(), LONG_ANSWER, _signal(0.6)).should_follow_up

    def test_budget_denied(self, policy, ledger):
        ledger.load(
            [
                CostEntry(
                    timestamp=NOW,
                    service="followup",
                    input_tokens=0,
                    output_tokens=0,
                    cost=4.80,
                )
            ]
        )

        decision = policy.decide(_session(), LONG_ANSWER, _signal())

        assert decision.action == TurnAction.USE_POOL_QUESTION
        assert decision.budget_denied is True
        assert decision.reason == "Daily budget exceeded (R$ 4.80 + R$ 0.60 > R$ 5.00)"

    def test_session_limit_checked_before_budget(self, policy, ledger):
        ledger.load(
            [
                CostEntry(
                    timestamp=NOW,
                    service="followup",
                    input_tokens=0,
                    output_tokens=0,
                    cost=4.80,
                )
            ]
        )

        decision = policy.decide(_session(used=3), LONG_ANSWER, _signal())

        assert decision.budget_denied is False
        assert decision.reason.startswith("Follow-up budget exhausted")

    def test_does_not_mutate_session(self, policy):
        session = _session()

        policy.decide(session, LONG_ANSWER, _signal())

        assert session.dynamic_follow_ups_used == 0

    def test_custom_threshold(self, ledger):
        policy = FollowUpPolicy(ledger, min_confidence=0.9)

        assert policy.decide(_session(), LONG_ANSWER, _signal(0.7)).should_follow_up is False
