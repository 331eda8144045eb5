"""Follow-up question generation backed by the LLM client.

Adapts LLMClient to the TextGenerator protocol: builds the prompts,
cleans the output, and reports token usage so the orchestrator can cost
the call. Every provider failure is surfaced as GenerationError so the
orchestrator has a single thing to catch before falling back to the pool.
"""

import httpx
import structlog

from src.core.exceptions import GenerationError, LLMError
from src.domain.models.generation import FollowUpRequest, GenerationResult
from src.llm.client import LLMClient
from src.llm.prompts.follow_up import (
    format_question,
    get_follow_up_system_prompt,
    get_follow_up_user_prompt,
)

log = structlog.get_logger(__name__)


class LLMFollowUpGenerator:
    """TextGenerator implementation using a hosted LLM."""

    def __init__(self, llm_client: LLMClient, max_tokens: int = 200):
        self.llm = llm_client
        self.max_tokens = max_tokens

    async def generate(self, request: FollowUpRequest) -> GenerationResult:
        """Generate one follow-up question for the triggering answer.

        Raises:
            GenerationError: On provider errors or an empty completion
        """
        system_prompt = get_follow_up_system_prompt(request.persona)
        user_prompt = get_follow_up_user_prompt(
            question_text=request.question_text,
            answer=request.answer,
            signal_category=request.signal_category,
            signal_keywords=request.signal_keywords,
            signal_reasoning=request.signal_reasoning,
            recent_exchanges=request.recent_exchanges,
            uncovered_topics=request.uncovered_topics,
        )

        log.info(
            "generating_follow_up",
            session_id=request.session_id,
            question_id=request.question_id,
            signal_category=request.signal_category,
        )

        try:
            response = await self.llm.complete(
                prompt=user_prompt,
                system=system_prompt,
                max_tokens=self.max_tokens,
            )
        except (LLMError, httpx.HTTPError) as e:
            log.error(
                "follow_up_llm_call_failed",
                session_id=request.session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GenerationError(f"Follow-up generation failed: {e}") from e

        question = format_question(response.content)
        if not question:
            raise GenerationError(
                "Follow-up generation returned an empty question",
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            )

        log.info(
            "follow_up_generated",
            session_id=request.session_id,
            question_length=len(question),
            latency_ms=round(response.latency_ms, 2),
        )

        return GenerationResult(
            text=question,
            input_tokens=max(0, response.input_tokens),
            output_tokens=max(0, response.output_tokens),
        )
