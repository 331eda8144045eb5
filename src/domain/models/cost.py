"""Cost accounting domain models.

CostEntry records are immutable: one per external LLM call, appended to
the ledger and never modified afterwards.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


CostService = Literal["followup", "insights"]
CostEnvironment = Literal["test", "production"]
BudgetPeriod = Literal["daily", "monthly"]


class CostEntry(BaseModel):
    """One external LLM call and what it cost."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    service: CostService
    input_tokens: int = Field(ge=0)
    output_tokens: int = Field(ge=0)
    cost: float = Field(ge=0.0)
    environment: CostEnvironment = "production"
    request_id: Optional[str] = None


class BudgetConfig(BaseModel):
    """Spend caps enforced by the cost ledger."""

    daily_limit: float = Field(default=5.00, gt=0)
    monthly_limit: float = Field(default=127.00, gt=0)
    alert_threshold: float = Field(
        default=0.80, gt=0, le=1.0, description="Fraction of a limit (0.8 = 80%)"
    )


class CostSummary(BaseModel):
    """Rolling aggregates for the current day and month."""

    today: float
    this_month: float
    daily_remaining: float
    monthly_remaining: float
    percent_used_daily: float
    percent_used_monthly: float
    entry_count: int = 0


class BudgetCheck(BaseModel):
    """Outcome of a can-afford query."""

    allowed: bool
    reason: Optional[str] = None


class BudgetAlert(BaseModel):
    """Emitted once per period when spend crosses the alert threshold."""

    period: BudgetPeriod
    percent_used: float
    threshold_percent: float
    spent: float
    limit: float
