"""
Configuration for the assessment service.

Settings: deployment values (budget caps, pricing, session timeout, API key)
from environment variables or .env.
AssessmentConfig: interview tuning from config/assessment_config.yaml.
"""

from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    question_pool_path: Optional[Path] = Field(
        default=None,
        description="Question bank YAML (default: config/question_pool.yaml)",
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/assessment.db"), description="Path to SQLite database file"
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    #
    # A single generation client produces dynamic follow-up questions.
    # Defaults are defined in src/llm/client.py.

    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    generation_model: Optional[str] = Field(
        default=None, description="Override generation model (default in client.py)"
    )
    generation_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        le=120,
        description="Upper bound on a single follow-up generation call",
    )

    # ==========================================================================
    # Budget
    # ==========================================================================

    daily_budget_limit: float = Field(
        default=5.00, gt=0, description="Maximum LLM spend per calendar day"
    )
    monthly_budget_limit: float = Field(
        default=127.00, gt=0, description="Maximum LLM spend per calendar month"
    )
    budget_alert_threshold: float = Field(
        default=0.80,
        gt=0,
        le=1.0,
        description="Fraction of a limit that triggers a budget alert",
    )
    follow_up_estimated_cost: float = Field(
        default=0.60, ge=0, description="Estimated cost of one follow-up generation"
    )
    input_cost_per_1k: float = Field(
        default=0.018, ge=0, description="Cost per 1k input tokens"
    )
    output_cost_per_1k: float = Field(
        default=0.090, ge=0, description="Cost per 1k output tokens"
    )
    currency_symbol: str = Field(default="R$", description="Currency used in reports")
    cost_environment: Literal["test", "production"] = Field(
        default="production", description="Environment tag for cost entries"
    )

    # ==========================================================================
    # Sessions
    # ==========================================================================

    session_timeout_minutes: int = Field(
        default=30, ge=1, le=24 * 60, description="Idle minutes before expiry"
    )
    session_sweep_interval_seconds: int = Field(
        default=300, ge=1, description="Seconds between expired-session sweeps"
    )
    max_dynamic_follow_ups: int = Field(
        default=3, ge=0, le=20, description="Dynamic follow-ups allowed per session"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


# Interview tuning (assessment_config.yaml). Deployment knobs stay in Settings.

BLOCK_ORDER = ["discovery", "expertise", "deep-dive", "risk-scan"]

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "assessment_config.yaml"


class FollowUpConfig(BaseModel):
    """Thresholds used by the follow-up decision policy."""

    min_confidence: float = Field(
        default=0.6, ge=0.0, le=1.0, description="Minimum signal confidence"
    )
    min_substantive_length: int = Field(
        default=20, ge=1, description="Minimum trimmed answer length"
    )


class FlowConfig(BaseModel):
    block_order: List[str] = Field(default_factory=lambda: list(BLOCK_ORDER))
    max_questions: int = Field(
        default=18, ge=1, le=100, description="Questions before forcing completion"
    )

    @field_validator("block_order")
    @classmethod
    def validate_block_order(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("block_order must not be empty")
        unknown = [b for b in v if b not in BLOCK_ORDER]
        if unknown:
            raise ValueError(f"Unknown blocks in block_order: {unknown}")
        if len(set(v)) != len(v):
            raise ValueError("block_order contains duplicates")
        return v


class AssessmentConfig(BaseModel):
    """Block flow, follow-up thresholds and persona labels."""

    flow: FlowConfig = Field(default_factory=FlowConfig)
    follow_up: FollowUpConfig = Field(default_factory=FollowUpConfig)
    personas: Dict[str, str] = Field(default_factory=dict)


def load_assessment_config(config_path: Optional[Path] = None) -> AssessmentConfig:
    """
    Read assessment_config.yaml.

    Without an explicit path, the repository's config/ is tried first, then
    ./config. A missing or empty file yields the built-in defaults.

    Raises:
        pydantic.ValidationError: If the file content is invalid
    """
    if config_path is not None:
        candidates = [Path(config_path)]
    else:
        candidates = [DEFAULT_CONFIG_PATH, Path.cwd() / "config" / "assessment_config.yaml"]

    for candidate in candidates:
        if candidate.exists():
            raw = yaml.safe_load(candidate.read_text(encoding="utf-8"))
            return AssessmentConfig(**raw) if raw else AssessmentConfig()

    return AssessmentConfig()


settings = Settings()

assessment_config = load_assessment_config()
