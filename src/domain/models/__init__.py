"""Domain models package."""

from .question import Question, QuestionBlock, QuestionSource, END_OF_BLOCK
from .conversation import ConversationContext, Persona, SessionPatch, UncertaintyEntry
from .cost import CostEntry, BudgetConfig, CostSummary, BudgetCheck, BudgetAlert
from .answer_signals import (
    SignalCategory,
    SignalResult,
    UncertaintyCategory,
    UncertaintyResult,
    PersonaMismatch,
    TopicCoverage,
)
from .turn import TurnAction, TurnResult, StartResult, CompletionResult, SessionStatus

__all__ = [
    "Question",
    "QuestionBlock",
    "QuestionSource",
    "END_OF_BLOCK",
    "ConversationContext",
    "Persona",
    "SessionPatch",
    "UncertaintyEntry",
    "CostEntry",
    "BudgetConfig",
    "CostSummary",
    "BudgetCheck",
    "BudgetAlert",
    "SignalCategory",
    "SignalResult",
    "UncertaintyCategory",
    "UncertaintyResult",
    "PersonaMismatch",
    "TopicCoverage",
    "TurnAction",
    "TurnResult",
    "StartResult",
    "CompletionResult",
    "SessionStatus",
]
