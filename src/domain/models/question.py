"""Question models shared by the static pool and dynamic follow-ups."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class QuestionBlock(str, Enum):
    """Coarse interview phase gating which pool questions are eligible."""

    DISCOVERY = "discovery"
    EXPERTISE = "expertise"
    DEEP_DIVE = "deep-dive"
    RISK_SCAN = "risk-scan"
    COMPLETION = "completion"


class QuestionSource(str, Enum):
    """Where a question came from."""

    POOL = "pool"
    DYNAMIC = "dynamic"


class QuestionOption(BaseModel):
    """Choice for single/multi-choice questions."""

    value: str
    label: str


class Question(BaseModel):
    """A question presented to the respondent.

    Pool questions carry a ``data_field`` naming where the answer is stored in
    the session's data mapping. Dynamic follow-ups record which question
    triggered them and why.
    """

    id: str
    block: QuestionBlock
    text: str
    input_type: str = Field(default="text", description="text, number, single-choice, multi-choice")
    data_field: Optional[str] = Field(
        default=None, description="Data key the answer is stored under"
    )
    tags: List[str] = Field(default_factory=list)
    options: List[QuestionOption] = Field(default_factory=list)
    source: QuestionSource = QuestionSource.POOL

    # Dynamic follow-up metadata
    triggered_by: Optional[str] = None
    reason: Optional[str] = None
    generated_at: Optional[datetime] = None

    @property
    def is_dynamic(self) -> bool:
        return self.source == QuestionSource.DYNAMIC

    @property
    def data_key(self) -> str:
        """Key used when merging the answer into session data."""
        return self.data_field or self.id

    @classmethod
    def follow_up(
        cls,
        text: str,
        triggered_by: "Question",
        reason: str,
        follow_up_number: int,
    ) -> "Question":
        """Build a dynamic follow-up question anchored to its trigger.

        A follow-up to a follow-up is anchored to the original pool question.
        The answer is stored under the follow-up's own id.
        """
        root_id = triggered_by.triggered_by or triggered_by.id
        return cls(
            id=f"followup-{root_id}-{follow_up_number}",
            block=triggered_by.block,
            text=text,
            input_type="text",
            tags=list(triggered_by.tags),
            source=QuestionSource.DYNAMIC,
            triggered_by=root_id,
            reason=reason,
            generated_at=datetime.now(timezone.utc),
        )


class EndOfBlock:
    """Returned by a question pool when a block has no eligible questions left."""

    _instance: Optional["EndOfBlock"] = None

    def __new__(cls) -> "EndOfBlock":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END_OF_BLOCK"

    def __bool__(self) -> bool:
        return False


END_OF_BLOCK = EndOfBlock()
