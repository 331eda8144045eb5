"""Tests for exception hierarchy."""

import pytest


def test_exception_hierarchy():
    """All exceptions inherit from AssessmentSystemError."""
    from src.core.exceptions import (
        AssessmentSystemError,
        BudgetExceededError,
        ConfigurationError,
        GenerationError,
        LLMError,
        LLMRateLimitError,
        LLMTimeoutError,
        SessionError,
        SessionNotFoundError,
        ValidationError,
    )

    assert issubclass(ConfigurationError, AssessmentSystemError)
    assert issubclass(LLMError, AssessmentSystemError)
    assert issubclass(LLMTimeoutError, LLMError)
    assert issubclass(LLMRateLimitError, LLMError)
    assert issubclass(GenerationError, AssessmentSystemError)
    assert issubclass(SessionNotFoundError, SessionError)
    assert issubclass(ValidationError, AssessmentSystemError)
    assert issubclass(BudgetExceededError, AssessmentSystemError)


def test_exceptions_carry_message():
    from src.core.exceptions import SessionNotFoundError

    with pytest.raises(SessionNotFoundError) as exc_info:
        raise SessionNotFoundError("Session abc not found")

    assert exc_info.value.message == "Session abc not found"
    assert str(exc_info.value) == "Session abc not found"
