"""Static question pool loaded from YAML.

Loads the question bank from config/question_pool.yaml. Each entry is
validated into a Question; order within a block is the order in the
file, and ``next_in_block`` returns the first question of the block that
has not been asked yet.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import structlog
import yaml

from src.core.exceptions import ConfigurationError
from src.domain.models.question import END_OF_BLOCK, EndOfBlock, Question, QuestionBlock

log = structlog.get_logger(__name__)

DEFAULT_POOL_PATH = Path(__file__).parent.parent.parent / "config" / "question_pool.yaml"


class YamlQuestionPool:
    """QuestionPool implementation backed by an in-memory list of questions."""

    def __init__(self, questions: List[Question]):
        """
        Initialize pool.

        Args:
            questions: Questions in presentation order

        Raises:
            ConfigurationError: On duplicate question ids
        """
        self._by_id: Dict[str, Question] = {}
        self._by_block: Dict[QuestionBlock, List[Question]] = {}

        for question in questions:
            if question.id in self._by_id:
                raise ConfigurationError(f"Duplicate question id in pool: {question.id}")
            self._by_id[question.id] = question
            self._by_block.setdefault(question.block, []).append(question)

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "YamlQuestionPool":
        """Load a pool from YAML.

        Args:
            path: Pool file (defaults to config/question_pool.yaml)

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        pool_file = Path(path) if path is not None else DEFAULT_POOL_PATH

        if not pool_file.exists():
            raise ConfigurationError(f"Question pool file not found: {pool_file}")

        with open(pool_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        try:
            questions = [Question(**q) for q in data.get("questions", [])]
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid question pool {pool_file}: {e}") from e

        pool = cls(questions)
        log.info(
            "question_pool_loaded",
            path=str(pool_file),
            question_count=len(questions),
            blocks={b.value: len(qs) for b, qs in pool._by_block.items()},
        )
        return pool

    def lookup(self, question_id: str) -> Optional[Question]:
        question = self._by_id.get(question_id)
        return question.model_copy(deep=True) if question else None

    def next_in_block(
        self, block: QuestionBlock, already_asked: Iterable[str]
    ) -> Union[Question, EndOfBlock]:
        asked = set(already_asked)
        for question in self._by_block.get(block, []):
            if question.id not in asked:
                return question.model_copy(deep=True)
        return END_OF_BLOCK

    def __len__(self) -> int:
        return len(self._by_id)
