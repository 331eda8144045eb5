"""
API request/response schemas.

Pydantic models for API validation and serialization. Request fields the
orchestrator validates itself are Optional here, so a missing field is
reported as a 400 ValidationError rather than FastAPI's 422.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from src.domain.models.cost import CostSummary


# ============ ASSESSMENT SCHEMAS ============


class StartRequest(BaseModel):
    """Request to start an assessment."""

    persona: Optional[str] = Field(
        default=None, description="Respondent persona, e.g. 'finance-ops'"
    )
    seed_data: Optional[Dict[str, Any]] = Field(
        default=None, description="Data already collected (e.g. company info)"
    )


class AnswerRequest(BaseModel):
    """Answer to the current question."""

    session_id: Optional[str] = None
    question_id: Optional[str] = None
    answer: Any = Field(
        default=None, description="Text, number, or list of selected options"
    )


class CompleteRequest(BaseModel):
    """Request to finish an assessment."""

    session_id: Optional[str] = None


# ============ COST SCHEMAS ============


class CostSummaryResponse(BaseModel):
    """Current spend with the limits it is measured against."""

    summary: CostSummary
    daily_limit: float
    monthly_limit: float
    alert_threshold: float
    currency: str
