"""Turn processing domain models returned by the assessment orchestrator.

Core Models:
    - TurnAction: What the orchestrator did with the turn
    - SessionStatus: Progress snapshot of one session
    - StartResult: Output of starting an assessment
    - TurnResult: Output of answering one question
    - CompletionResult: Final data and summary at completion

The API layer serializes these directly.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from src.domain.models.answer_signals import (
    PersonaMismatch,
    SignalResult,
    TopicCoverage,
)
from src.domain.models.conversation import AnswerRecord, UncertaintyEntry
from src.domain.models.question import Question, QuestionBlock


class TurnAction(str, Enum):
    """Routing decision for the next question."""

    ASK_FOLLOW_UP = "ask_follow_up"
    USE_POOL_QUESTION = "use_pool_question"
    END_BLOCK = "end_block"


class SessionStatus(BaseModel):
    """Progress snapshot of one assessment session."""

    session_id: str
    persona: Optional[str] = None
    persona_confidence: float = 0.0
    current_block: QuestionBlock
    questions_asked: int
    questions_answered: int
    dynamic_follow_ups_used: int
    max_follow_ups: int
    follow_ups_remaining: int
    topic_coverage: int = Field(description="Essential topic coverage (0-100)")
    is_complete: bool
    created_at: datetime
    last_updated: datetime


class StartResult(BaseModel):
    """A new session and the first question to ask."""

    session_id: str
    first_question: Optional[Question] = None
    session_status: SessionStatus


class TurnResult(BaseModel):
    """Outcome of one answered question.

    ``action`` is what the client does next (ask the next question or show
    completion). ``turn_action`` is the routing the orchestrator applied.
    """

    action: Literal["ask_next", "end"]
    next_question: Optional[Question] = None
    session_status: SessionStatus
    turn_action: TurnAction
    reason: str
    budget_denied: bool = False
    signal: SignalResult
    uncertainty: Optional[UncertaintyEntry] = None
    persona_mismatch: PersonaMismatch


class AssessmentSummary(BaseModel):
    """Diagnostics gathered over a whole session."""

    questions_asked: int
    questions_answered: int
    dynamic_follow_ups_used: int
    persona: Optional[str] = None
    topic_coverage: TopicCoverage
    topics_covered: List[str] = Field(default_factory=list)
    uncertainty: Dict[str, Any] = Field(default_factory=dict)
    persona_mismatch: PersonaMismatch
    answers: List[AnswerRecord] = Field(default_factory=list)
    duration_seconds: float = 0.0


class CompletionResult(BaseModel):
    """Accumulated data and summary of a completed session."""

    session_id: str
    final_data: Dict[str, Any]
    summary: AssessmentSummary
