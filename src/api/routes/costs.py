"""
Cost reporting endpoints.

Read-only views over the LLM cost ledger for operators.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import Response
import structlog

from src.api.dependencies import CostLedgerDep
from src.api.schemas import CostSummaryResponse

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/costs", tags=["costs"])


@router.get("/summary", response_model=CostSummaryResponse)
async def cost_summary(ledger: CostLedgerDep):
    """Spend for the current day and month against the configured limits."""
    return CostSummaryResponse(
        summary=ledger.summarize(),
        daily_limit=ledger.budget.daily_limit,
        monthly_limit=ledger.budget.monthly_limit,
        alert_threshold=ledger.budget.alert_threshold,
        currency=ledger.currency_symbol,
    )


@router.get("/export")
async def export_costs(ledger: CostLedgerDep):
    """All cost entries as a CSV download."""
    content = ledger.export_csv()
    filename = f"llm_costs_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}.csv"

    log.info("cost_export_generated", size_bytes=len(content))

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
