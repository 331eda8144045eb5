"""
Custom exception hierarchy for the assessment service.

All application exceptions inherit from AssessmentSystemError.
"""


class AssessmentSystemError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(AssessmentSystemError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(AssessmentSystemError):
    """Base for LLM-related errors."""

    pass


class LLMTimeoutError(LLMError):
    """LLM call timed out."""

    pass


class LLMRateLimitError(LLMError):
    """LLM rate limit exceeded."""

    pass


class GenerationError(AssessmentSystemError):
    """Dynamic question generation failed or timed out.

    Recovered locally by falling back to a pool question. When the provider
    answered but the output was unusable, the tokens it billed are carried
    so the cost can still be recorded.
    """

    def __init__(self, message: str, input_tokens: int = 0, output_tokens: int = 0):
        super().__init__(message)
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens

    @property
    def billed(self) -> bool:
        return self.input_tokens > 0 or self.output_tokens > 0


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(AssessmentSystemError):
    """Session-related error."""

    pass


class SessionNotFoundError(SessionError):
    """Session does not exist or has expired."""

    pass


# =============================================================================
# Request Errors
# =============================================================================


class ValidationError(AssessmentSystemError):
    """Input validation failed."""

    pass


# =============================================================================
# Budget Errors
# =============================================================================


class BudgetExceededError(AssessmentSystemError):
    """Cost ledger denied a request.

    Used as an internal routing signal; never surfaced to end users.
    """

    pass
