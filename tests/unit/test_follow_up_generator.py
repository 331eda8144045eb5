"""Tests for LLMFollowUpGenerator."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.core.exceptions import GenerationError, LLMTimeoutError
from src.domain.models.generation import FollowUpRequest
from src.llm.client import LLMResponse
from src.services.follow_up_generator import LLMFollowUpGenerator


def _request():
    return FollowUpRequest(
        session_id="s1",
        persona="engineering-tech",
        question_id="pain-main",
        question_text="Qual o maior problema?",
        answer="Deploys lentos e muito retrabalho",
        signal_category="pain-quantified",
        signal_keywords=["lento", "retrabalho"],
        signal_reasoning="Pain points mentioned",
    )


def _llm(content="Quantas horas por semana vão para retrabalho", error=None):
    llm = MagicMock()
    if error is not None:
        llm.complete = AsyncMock(side_effect=error)
    else:
        llm.complete = AsyncMock(
            return_value=LLMResponse(
                content=content,
                model="claude-sonnet-4-6",
                usage={"input_tokens": 400, "output_tokens": 30},
            )
        )
    return llm


async def test_generate_returns_question_and_usage():
    llm = _llm()
    generator = LLMFollowUpGenerator(llm, max_tokens=150)

    result = await generator.generate(_request())

    assert result.text == "Quantas horas por semana vão para retrabalho?"
    assert result.input_tokens == 400
    assert result.output_tokens == 30

    kwargs = llm.complete.call_args.kwargs
    assert kwargs["max_tokens"] == 150
    assert "technical terms are fine" in kwargs["system"]
    assert "Deploys lentos e muito retrabalho" in kwargs["prompt"]


async def test_llm_error_becomes_generation_error():
    generator = LLMFollowUpGenerator(_llm(error=LLMTimeoutError("timed out")))

    with pytest.raises(GenerationError, match="timed out"):
        await generator.generate(_request())


async def test_http_error_becomes_generation_error():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    error = httpx.HTTPStatusError(
        "server error", request=request, response=httpx.Response(500, request=request)
    )
    generator = LLMFollowUpGenerator(_llm(error=error))

    with pytest.raises(GenerationError):
        await generator.generate(_request())


async def test_empty_completion_is_an_error():
    generator = LLMFollowUpGenerator(_llm(content='  ""  '))

    with pytest.raises(GenerationError, match="empty") as exc_info:
        await generator.generate(_request())

    # The provider still billed the call
    assert exc_info.value.input_tokens == 400
    assert exc_info.value.output_tokens == 30
    assert exc_info.value.billed is True


async def test_llm_error_bills_nothing():
    generator = LLMFollowUpGenerator(_llm(error=LLMTimeoutError("timed out")))

    with pytest.raises(GenerationError) as exc_info:
        await generator.generate(_request())

    assert exc_info.value.billed is False
