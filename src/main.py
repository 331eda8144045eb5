"""
FastAPI application entry point.

Run with: uvicorn src.main:app --reload
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from src.api.exception_handlers import setup_exception_handlers
from src.api.routes import assessment, costs, health
from src.core.config import assessment_config, settings
from src.core.logging import bind_context, clear_context, configure_logging, get_logger
from src.domain.models.cost import BudgetConfig
from src.llm.client import get_generation_llm_client
from src.persistence.database import init_database
from src.persistence.repositories.cost_entry_repo import CostEntryRepository
from src.services.assessment_service import AssessmentService
from src.services.cost_ledger import CostLedger
from src.services.follow_up_generator import LLMFollowUpGenerator
from src.services.question_pool import YamlQuestionPool
from src.services.session_store import SessionStore

configure_logging()
log = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with a UUID4 request id.

    The id is bound into the structlog context, stored on
    request.state.request_id (the ledger records it with each LLM cost) and
    echoed back in the X-Request-ID response header.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        bind_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def build_cost_ledger() -> CostLedger:
    budget = BudgetConfig(
        daily_limit=settings.daily_budget_limit,
        monthly_limit=settings.monthly_budget_limit,
        alert_threshold=settings.budget_alert_threshold,
    )
    return CostLedger(
        budget=budget,
        input_cost_per_1k=settings.input_cost_per_1k,
        output_cost_per_1k=settings.output_cost_per_1k,
        currency_symbol=settings.currency_symbol,
    )


def build_follow_up_generator() -> Optional[LLMFollowUpGenerator]:
    """LLM-backed generator, or None (pool questions only) without an API key."""
    if not settings.anthropic_api_key:
        log.warning(
            "follow_up_generation_disabled",
            reason="ANTHROPIC_API_KEY not configured; pool questions only",
        )
        return None
    return LLMFollowUpGenerator(get_generation_llm_client())


def _start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def _stop(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup wires the components onto app.state and restores this month's
    cost history; shutdown stops the expiry sweeper and drains sessions.
    """
    log.info(
        "application_starting",
        debug=settings.debug,
        database_path=str(settings.database_path),
    )
    await init_database()

    cost_repo = CostEntryRepository(settings.database_path)
    ledger = build_cost_ledger()
    restored = ledger.load(await cost_repo.list_since(_start_of_month(ledger.clock())))

    store = SessionStore(
        timeout=timedelta(minutes=settings.session_timeout_minutes),
        max_follow_ups=settings.max_dynamic_follow_ups,
    )
    app.state.session_store = store
    app.state.cost_ledger = ledger
    app.state.assessment_service = AssessmentService(
        store=store,
        ledger=ledger,
        pool=YamlQuestionPool.from_yaml(settings.question_pool_path),
        generator=build_follow_up_generator(),
        cost_repo=cost_repo,
        config=assessment_config,
        generation_timeout=settings.generation_timeout_seconds,
        follow_up_estimated_cost=settings.follow_up_estimated_cost,
        cost_environment=settings.cost_environment,
    )

    sweeper = asyncio.create_task(store.run_sweeper(settings.session_sweep_interval_seconds))
    log.info("application_started", restored_cost_entries=restored)

    yield

    log.info("application_shutting_down", active_sessions=store.count())
    await _stop(sweeper)
    store.drain()


app = FastAPI(
    title="Adaptive Assessment Service",
    description="Adaptive interview orchestration with budget-gated LLM follow-ups",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(CorrelationIDMiddleware)
setup_exception_handlers(app)

app.include_router(health.router, tags=["system"])
app.include_router(assessment.router)
app.include_router(costs.router)


@app.get("/")
async def root():
    return {"name": "Adaptive Assessment Service", "version": "0.1.0", "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.main:app", host=settings.host, port=settings.port, reload=settings.debug)
