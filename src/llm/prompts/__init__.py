# noqa
from src.llm.prompts.follow_up import (
    get_follow_up_system_prompt,
    get_follow_up_user_prompt,
    format_question,
)

__all__ = [
    "get_follow_up_system_prompt",
    "get_follow_up_user_prompt",
    "format_question",
]
