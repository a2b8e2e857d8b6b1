"""
Application settings and configuration management.
"""

import os
import sys
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_testing() -> bool:
    """Check if we're running in a test environment."""
    return (
        "pytest" in os.environ.get("_", "") or
        "PYTEST_CURRENT_TEST" in os.environ or
        os.environ.get("TESTING", "").lower() == "true" or
        ("test" in sys.argv[0].lower() if len(sys.argv) > 0 else False)
    )


class Settings(BaseSettings):
    """Application settings."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO")

    cors_origins_str: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
        alias="cors_origins"
    )

    @property
    def cors_origins(self) -> List[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins_str.split(',') if origin.strip()]

    # Database Configuration
    database_url: str = Field(
        default="",
        description="Database connection string for chain and execution history"
    )

    @field_validator('database_url', mode='after')
    @classmethod
    def strip_database_url(cls, v: str) -> str:
        """Strip whitespace from database URL to avoid common configuration errors."""
        return v.strip() if v else v

    history_enabled: bool = Field(
        default=True,
        description="Persist chains and executions; disabling leaves the API read-only"
    )

    # Concurrency Control Configuration
    max_concurrent_executions: int = Field(
        default=10,
        ge=1,
        description="Maximum number of chain executions running at the same time"
    )
    max_parallel_steps: int = Field(
        default=4,
        ge=1,
        description="Worker pool bound for same-wave steps within one execution"
    )

    # Step Execution Configuration
    default_step_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Per-attempt timeout when a step does not declare its own"
    )
    cancellation_grace_seconds: float = Field(
        default=5.0,
        ge=0,
        description="How long in-flight steps get to unwind after cancellation or chain timeout"
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Backoff delay before the first retry; doubles per attempt"
    )
    retry_max_delay_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Upper bound on the retry backoff delay"
    )

    # Validation Advice Thresholds
    parallel_suggestion_threshold: int = Field(
        default=3,
        description="Suggest parallel mode for sequential chains with more steps than this"
    )
    split_suggestion_threshold: int = Field(
        default=5,
        description="Suggest splitting chains with more steps than this"
    )

    # Bottleneck Detection Defaults
    bottleneck_time_threshold_ms: int = Field(default=60000, gt=0)
    bottleneck_cost_threshold: float = Field(default=0.1, gt=0)
    bottleneck_quality_threshold: float = Field(default=0.7, ge=0, le=1)

    # Chain Configuration
    chain_config_path: str = Field(
        default="../config/chains.yaml",
        description="Path to YAML file with chain definitions registered at startup"
    )

    # Agent Transport Configuration
    agent_service_url: Optional[str] = Field(
        default=None,
        description="Base URL of the remote agent service; simulated agents are used when unset"
    )
    agent_request_timeout_seconds: float = Field(default=120.0, gt=0)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.database_url:
            if is_testing():
                self.database_url = "sqlite:///:memory:"
            else:
                self.database_url = "sqlite:///agentchain.db"

    @model_validator(mode='after')
    def validate_retry_delays(self) -> 'Settings':
        """Backoff cap must not be below the base delay."""
        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError(
                f"retry_max_delay_seconds ({self.retry_max_delay_seconds}) must be >= "
                f"retry_base_delay_seconds ({self.retry_base_delay_seconds})"
            )
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
