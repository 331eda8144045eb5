"""Test doubles and shared data for the assessment tests."""

import asyncio
from datetime import datetime, timedelta
from typing import List, Optional

from src.domain.models.generation import FollowUpRequest, GenerationResult
from src.domain.models.question import Question, QuestionBlock


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeGenerator:
    """Scripted TextGenerator: returns a fixed question or fails on demand."""

    def __init__(
        self,
        text: str = "Você mencionou concorrência; quanto isso afeta a receita?",
        input_tokens: int = 1000,
        output_tokens: int = 100,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.text = text
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.error = error
        self.delay = delay
        self.requests: List[FollowUpRequest] = []

    async def generate(self, request: FollowUpRequest) -> GenerationResult:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GenerationResult(
            text=self.text,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
        )


# Two questions per block keeps block transitions easy to reach
POOL_QUESTIONS = [
    Question(
        id="company-overview",
        block=QuestionBlock.DISCOVERY,
        text="Conte um pouco sobre a empresa e o time de tecnologia.",
        data_field="company_overview",
        tags=["team"],
    ),
    Question(
        id="team-size-dev",
        block=QuestionBlock.DISCOVERY,
        text="Quantos desenvolvedores vocês têm hoje?",
        input_type="number",
        data_field="team_size",
        tags=["team"],
    ),
    Question(
        id="pain-main",
        block=QuestionBlock.EXPERTISE,
        text="Qual é o maior problema de entrega de software hoje?",
        data_field="main_pain",
        tags=["velocity"],
    ),
    Question(
        id="pain-competition",
        block=QuestionBlock.EXPERTISE,
        text="Como a concorrência afeta vocês?",
        data_field="competition",
        tags=["competition"],
    ),
    Question(
        id="bugs-per-month",
        block=QuestionBlock.DEEP_DIVE,
        text="Quantos bugs chegam à produção por mês?",
        input_type="number",
        data_field="bugs_per_month",
        tags=["quality"],
    ),
    Question(
        id="revenue-at-risk",
        block=QuestionBlock.RISK_SCAN,
        text="Quanto de receita está em risco se nada mudar?",
        data_field="revenue_at_risk",
        tags=["cost"],
    ),
]

# Substantive, two competition keywords ("concorrência", "rival") -> confidence 0.7
COMPETITION_ANSWER = (
    "A concorrência está forte, um rival lançou algo parecido no último trimestre"
)

NO_SIGNAL_ANSWER = "Somos uma fintech"
