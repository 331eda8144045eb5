# noqa
from src.services.assessment_service import AssessmentService
from src.services.cost_ledger import CostLedger
from src.services.session_store import SessionStore

__all__ = ["AssessmentService", "CostLedger", "SessionStore"]
