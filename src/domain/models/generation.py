"""Models exchanged with the follow-up text generator."""

from typing import List, Optional

from pydantic import BaseModel, Field


class FollowUpRequest(BaseModel):
    """Everything a generator needs to write one follow-up question."""

    session_id: str
    persona: Optional[str] = None
    question_id: str
    question_text: str
    answer: str
    signal_category: str
    signal_keywords: List[str] = Field(default_factory=list)
    signal_reasoning: str = ""
    recent_exchanges: List[dict] = Field(
        default_factory=list, description='[{"question": ..., "answer": ...}]'
    )
    uncovered_topics: List[str] = Field(default_factory=list)


class GenerationResult(BaseModel):
    """Generated text plus the token usage billed for it."""

    text: str
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
