"""
Service protocol definitions (interfaces).

Defines the narrow interfaces the orchestrator depends on, using
Python's typing.Protocol. Implementations only need matching methods.
"""

from typing import Iterable, Optional, Protocol, Union

from src.domain.models.generation import FollowUpRequest, GenerationResult
from src.domain.models.question import EndOfBlock, Question, QuestionBlock


class TextGenerator(Protocol):
    """
    Protocol for follow-up text generators.

    The provider is a black box; only the generated text and the tokens
    billed for it cross this boundary.
    """

    async def generate(self, request: FollowUpRequest) -> GenerationResult:
        """
        Generate one follow-up question.

        Args:
            request: Trigger question, answer, signal and context

        Returns:
            GenerationResult with text and token usage

        Raises:
            GenerationError: If the provider fails or returns nothing usable
        """
        ...


class QuestionPool(Protocol):
    """
    Protocol for the static question bank.

    Question content is data; the orchestrator only asks for questions by
    id or for the next unasked question of a block.
    """

    def lookup(self, question_id: str) -> Optional[Question]:
        """Question with this id, or None if the pool does not know it."""
        ...

    def next_in_block(
        self, block: QuestionBlock, already_asked: Iterable[str]
    ) -> Union[Question, EndOfBlock]:
        """
        Next eligible question in a block.

        Args:
            block: Block to draw from
            already_asked: Ids asked so far in the session

        Returns:
            A Question, or END_OF_BLOCK when the block has nothing left
        """
        ...
