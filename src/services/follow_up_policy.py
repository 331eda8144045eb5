"""
Follow-up decision policy.

Decides, after each answer, whether the next question should be a
dynamically generated follow-up or come from the static pool.

Rules are evaluated in order and the first failing rule decides:
    1. follow-up budget for the session exhausted
    2. no interesting signal in the answer
    3. answer too short or stock ("sim", "talvez", ...)
    4. signal confidence below the threshold
    5. cost ledger would exceed a daily/monthly cap

The policy never mutates the session. The orchestrator increments the
follow-up counter only after generation succeeds.
"""

import structlog
from pydantic import BaseModel

from src.core.exceptions import BudgetExceededError
from src.domain.models.answer_signals import SignalCategory, SignalResult
from src.domain.models.conversation import ConversationContext
from src.domain.models.turn import TurnAction
from src.services.cost_ledger import CostLedger
from src.services.signal_detector import MIN_SUBSTANTIVE_LENGTH, is_answer_substantive

log = structlog.get_logger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.6
DEFAULT_FOLLOW_UP_COST = 0.60


class FollowUpDecision(BaseModel):
    """Outcome of the policy for one answer."""

    action: TurnAction
    reason: str
    budget_denied: bool = False

    @property
    def should_follow_up(self) -> bool:
        return self.action == TurnAction.ASK_FOLLOW_UP


class FollowUpPolicy:
    """Gatekeeper for dynamic follow-up generation."""

    def __init__(
        self,
        ledger: CostLedger,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        min_substantive_length: int = MIN_SUBSTANTIVE_LENGTH,
        estimated_cost: float = DEFAULT_FOLLOW_UP_COST,
    ):
        self.ledger = ledger
        self.min_confidence = min_confidence
        self.min_substantive_length = min_substantive_length
        self.estimated_cost = estimated_cost

    def decide(
        self,
        session: ConversationContext,
        answer: object,
        signal: SignalResult,
    ) -> FollowUpDecision:
        """
        Decide whether to ask a dynamic follow-up.

        Args:
            session: Current session state (read only)
            answer: The answer just given
            signal: Signal detected in that answer

        Returns:
            FollowUpDecision with the action and a human-readable reason
        """
        used = session.dynamic_follow_ups_used
        maximum = session.max_follow_ups

        if used >= maximum:
            return self._pool(
                session,
                f"Follow-up budget exhausted ({used}/{maximum} dynamic follow-ups used)",
            )

        if not signal.has_signals or signal.category == SignalCategory.NONE:
            return self._pool(session, "No interesting signal detected")

        if not is_answer_substantive(answer, self.min_substantive_length):
            return self._pool(session, "Answer too short or vague for follow-up")

        if signal.confidence < self.min_confidence:
            return self._pool(
                session, f"Signal confidence too low ({signal.confidence})"
            )

        try:
            self.ledger.ensure_affordable(self.estimated_cost)
        except BudgetExceededError as e:
            log.warning(
                "follow_up_budget_denied",
                session_id=session.session_id,
                reason=e.message,
                estimated_cost=self.estimated_cost,
            )
            return FollowUpDecision(
                action=TurnAction.USE_POOL_QUESTION,
                reason=e.message,
                budget_denied=True,
            )

        log.info(
            "follow_up_approved",
            session_id=session.session_id,
            category=signal.category.value,
            confidence=signal.confidence,
            follow_ups_used=used,
        )
        return FollowUpDecision(action=TurnAction.ASK_FOLLOW_UP, reason=signal.reasoning)

    def _pool(self, session: ConversationContext, reason: str) -> FollowUpDecision:
        log.debug("follow_up_declined", session_id=session.session_id, reason=reason)
        return FollowUpDecision(action=TurnAction.USE_POOL_QUESTION, reason=reason)
