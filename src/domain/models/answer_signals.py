"""Per-answer detection results and topic coverage.

These are transient: produced by the signal and uncertainty detectors for
one decision and owned by the caller for the duration of the turn.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class SignalCategory(str, Enum):
    """Thematic category that can justify a dynamic follow-up."""

    INNOVATION = "innovation"
    COMPETITION = "competition"
    PAIN_QUANTIFIED = "pain-quantified"
    URGENCY = "urgency"
    GROWTH = "growth"
    COST = "cost"
    QUALITY = "quality"
    NONE = "none"


class UncertaintyCategory(str, Enum):
    """Kind of uncertainty expressed in an answer."""

    EXPLICIT = "explicit"
    DEFLECTION = "deflection"
    VAGUE = "vague"
    NONE = "none"


class SignalResult(BaseModel):
    """Category classification of a free-text answer."""

    has_signals: bool
    category: SignalCategory = SignalCategory.NONE
    keywords: List[str] = Field(
        default_factory=list, description="Up to 3 matched keywords as evidence"
    )
    match_count: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""


class UncertaintyResult(BaseModel):
    """Whether an answer signals lack of knowledge, deflection or vagueness."""

    has_uncertainty: bool
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    category: UncertaintyCategory = UncertaintyCategory.NONE
    detected_phrases: List[str] = Field(default_factory=list)


class PersonaMismatch(BaseModel):
    """Diagnostic signal: answers suggest the persona does not fit the questions.

    Never blocks progression; surfaced to the UI/ops layer.
    """

    has_mismatch: bool
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reason: str
    suggested_action: str


class TopicCoverage(BaseModel):
    """Coverage of the essential topics for one session."""

    percentage: int = Field(ge=0, le=100)
    covered: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
