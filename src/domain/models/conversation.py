"""Conversation context domain models for the adaptive assessment.

This module defines the per-session aggregate tracked across one
assessment run, and the typed patch used to mutate it.

Core Models:
    - ConversationContext: Authoritative per-session state
    - SessionPatch: Field-categorised mutation applied by the session store
    - UncertaintyEntry: One answer flagged as uncertain
    - AnswerRecord: One answered question

Merge Semantics (SessionPatch):
    - Scalars (persona, persona_confidence, current_block, pending_question)
      overwrite when set on the patch
    - Counters are incremented, never assigned
    - topics_covered is set-unioned
    - asked_question_ids is list-unioned (first-seen order kept)
    - uncertainty_entries and answers are appended
    - data is merged key by key: lists union without duplicates, mappings
      shallow-merge, scalars take the most recent non-empty value

Session Lifecycle:
    1. Created by SessionStore.create() in the discovery block
    2. Patched on every turn through SessionStore.update()
    3. Deleted on completion, or reaped after the idle timeout
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, model_validator

from src.domain.models.question import Question, QuestionBlock, QuestionSource


DEFAULT_MAX_FOLLOW_UPS = 3


class Persona(str, Enum):
    """Respondent role used to route question difficulty and jargon."""

    BOARD_EXECUTIVE = "board-executive"
    FINANCE_OPS = "finance-ops"
    PRODUCT_BUSINESS = "product-business"
    ENGINEERING_TECH = "engineering-tech"
    IT_DEVOPS = "it-devops"


class UncertaintyEntry(BaseModel):
    """An answer the uncertainty detector flagged."""

    question_id: str
    category: str  # explicit / vague / deflection
    confidence: float = Field(ge=0.0, le=1.0)
    detected_phrases: List[str] = Field(default_factory=list)


class AnswerRecord(BaseModel):
    """One question/answer exchange, kept in order of arrival."""

    question_id: str
    question_text: str
    answer: Any
    source: QuestionSource = QuestionSource.POOL
    answered_at: datetime


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set)) and len(value) == 0:
        return True
    return False


def _union_list(existing: List[Any], incoming: List[Any]) -> List[Any]:
    """Union by equality, preserving first-seen order (values may be unhashable)."""
    merged: List[Any] = []
    for item in list(existing) + list(incoming):
        if item not in merged:
            merged.append(item)
    return merged


def merge_data(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Merge extracted answer data into the accumulated mapping.

    Args:
        existing: Current session data (not modified)
        incoming: New field values from the latest answer

    Returns:
        New merged mapping
    """
    merged = dict(existing)
    for key, value in incoming.items():
        if _is_empty(value):
            continue
        current = merged.get(key)
        if isinstance(value, (list, tuple, set)):
            base = current if isinstance(current, list) else []
            merged[key] = _union_list(base, list(value))
        elif isinstance(value, dict) and isinstance(current, dict):
            merged[key] = {
                **current,
                **{k: v for k, v in value.items() if not _is_empty(v)},
            }
        else:
            merged[key] = value
    return merged


class SessionPatch(BaseModel):
    """Typed partial mutation of a ConversationContext.

    Callers never assign fields on a context directly; they describe the
    change here and the session store applies it atomically.
    """

    # Scalar overwrite (None means "leave unchanged")
    persona: Optional[Persona] = None
    persona_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    current_block: Optional[QuestionBlock] = None
    pending_question: Optional[Question] = None
    clear_pending_question: bool = False

    # Counter increments
    questions_asked: int = Field(default=0, ge=0)
    questions_answered: int = Field(default=0, ge=0)
    dynamic_follow_ups_used: int = Field(default=0, ge=0)

    # Set / list unions and appends
    topics_covered: Set[str] = Field(default_factory=set)
    asked_question_ids: List[str] = Field(default_factory=list)
    uncertainty_entries: List[UncertaintyEntry] = Field(default_factory=list)
    answers: List[AnswerRecord] = Field(default_factory=list)

    # Mapping merge
    data: Dict[str, Any] = Field(default_factory=dict)


class ConversationContext(BaseModel):
    """Mutable per-user state tracked across one assessment run.

    Attributes:
        - session_id: Opaque unique id
        - persona / persona_confidence: Assumed respondent role and certainty
        - questions_asked / questions_answered: Progress counters
        - dynamic_follow_ups_used / max_follow_ups: LLM follow-up budget
        - data: Accumulated answer data (field name -> value)
        - topics_covered: Topic labels already discussed
        - current_block: Interview phase gating eligible pool questions
        - uncertainty_history: Answers flagged as uncertain, in order

    Invariants:
        - dynamic_follow_ups_used <= max_follow_ups
        - last_updated >= created_at
        - 0 <= persona_confidence <= 1
    """

    session_id: str
    created_at: datetime
    last_updated: datetime

    persona: Optional[Persona] = None
    persona_confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    questions_asked: int = Field(default=0, ge=0)
    questions_answered: int = Field(default=0, ge=0)
    dynamic_follow_ups_used: int = Field(default=0, ge=0)
    max_follow_ups: int = Field(default=DEFAULT_MAX_FOLLOW_UPS, ge=0)

    data: Dict[str, Any] = Field(default_factory=dict)
    topics_covered: Set[str] = Field(default_factory=set)
    current_block: QuestionBlock = QuestionBlock.DISCOVERY
    uncertainty_history: List[UncertaintyEntry] = Field(default_factory=list)

    asked_question_ids: List[str] = Field(default_factory=list)
    pending_question: Optional[Question] = None
    answers: List[AnswerRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_invariants(self) -> "ConversationContext":
        if self.dynamic_follow_ups_used > self.max_follow_ups:
            raise ValueError(
                f"dynamic_follow_ups_used ({self.dynamic_follow_ups_used}) exceeds "
                f"max_follow_ups ({self.max_follow_ups})"
            )
        if self.last_updated < self.created_at:
            raise ValueError("last_updated precedes created_at")
        return self

    @property
    def follow_ups_remaining(self) -> int:
        return self.max_follow_ups - self.dynamic_follow_ups_used

    def apply_patch(self, patch: SessionPatch, now: datetime) -> "ConversationContext":
        """Return a new context with ``patch`` merged in and ``last_updated`` refreshed.

        A follow-up increment that would break the budget invariant is
        clamped to the remaining allowance.
        """
        follow_ups = min(
            self.dynamic_follow_ups_used + patch.dynamic_follow_ups_used,
            self.max_follow_ups,
        )

        pending = self.pending_question
        if patch.clear_pending_question:
            pending = None
        if patch.pending_question is not None:
            pending = patch.pending_question

        updates: Dict[str, Any] = {
            "last_updated": max(now, self.created_at),
            "questions_asked": self.questions_asked + patch.questions_asked,
            "questions_answered": self.questions_answered + patch.questions_answered,
            "dynamic_follow_ups_used": follow_ups,
            "topics_covered": set(self.topics_covered) | set(patch.topics_covered),
            "asked_question_ids": _union_list(
                self.asked_question_ids, patch.asked_question_ids
            ),
            "uncertainty_history": list(self.uncertainty_history)
            + list(patch.uncertainty_entries),
            "answers": list(self.answers) + list(patch.answers),
            "data": merge_data(self.data, patch.data),
            "pending_question": pending,
        }
        if patch.persona is not None:
            updates["persona"] = patch.persona
        if patch.persona_confidence is not None:
            updates["persona_confidence"] = patch.persona_confidence
        if patch.current_block is not None:
            updates["current_block"] = patch.current_block

        return self.model_copy(update=updates, deep=True)
