"""Dependency injection for API routes.

Long-lived components (cost ledger, assessment service) are built once in
the application lifespan and stored on ``app.state``; these dependencies
hand them to the routes.
"""

from typing import Annotated

from fastapi import Depends, Request

from src.services.assessment_service import AssessmentService
from src.services.cost_ledger import CostLedger


def get_assessment_service(request: Request) -> AssessmentService:
    """FastAPI dependency for the process-wide AssessmentService."""
    return request.app.state.assessment_service


def get_cost_ledger(request: Request) -> CostLedger:
    """FastAPI dependency for the process-wide CostLedger."""
    return request.app.state.cost_ledger


# Type aliases for dependency injection
AssessmentServiceDep = Annotated[AssessmentService, Depends(get_assessment_service)]
CostLedgerDep = Annotated[CostLedger, Depends(get_cost_ledger)]
