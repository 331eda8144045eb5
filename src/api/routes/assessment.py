"""
Assessment API routes.

Endpoints for starting an adaptive assessment, answering questions,
checking progress and completing.
"""

from fastapi import APIRouter, Request, status
import structlog

from src.api.dependencies import AssessmentServiceDep
from src.api.schemas import AnswerRequest, CompleteRequest, StartRequest
from src.core.logging import bind_context
from src.domain.models.turn import (
    CompletionResult,
    SessionStatus,
    StartResult,
    TurnResult,
)

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/assessment", tags=["assessment"])


@router.post(
    "/start",
    response_model=StartResult,
    status_code=status.HTTP_201_CREATED,
)
async def start_assessment(body: StartRequest, service: AssessmentServiceDep):
    """Create a session and return the first question."""
    result = await service.start(persona=body.persona, seed_data=body.seed_data)
    bind_context(session_id=result.session_id)
    return result


@router.post("/answer", response_model=TurnResult)
async def answer_question(
    body: AnswerRequest,
    request: Request,
    service: AssessmentServiceDep,
):
    """Submit an answer and receive the next question (or the end signal).

    Returns 400 on missing fields or an unknown question id, 404 when the
    session is unknown or expired.
    """
    if body.session_id:
        bind_context(session_id=body.session_id)

    return await service.answer(
        session_id=body.session_id,
        question_id=body.question_id,
        answer=body.answer,
        request_id=getattr(request.state, "request_id", None),
    )


@router.post("/complete", response_model=CompletionResult)
async def complete_assessment(body: CompleteRequest, service: AssessmentServiceDep):
    """Finish the assessment, returning the collected data and a summary."""
    if body.session_id:
        bind_context(session_id=body.session_id)
    return await service.complete(body.session_id)


@router.get("/{session_id}/status", response_model=SessionStatus)
async def assessment_status(session_id: str, service: AssessmentServiceDep):
    """Progress snapshot for a live session."""
    return await service.status(session_id)
