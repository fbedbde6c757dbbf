"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with validation.
"""

from typing import Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Configuration
    app_name: str = Field(
        default="Fraud Triage Orchestrator",
        description="Application name",
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Step Execution
    step_timeout_ms: int = Field(
        default=1000,
        description="Default deadline for a single workflow step",
    )
    compliance_timeout_ms: int = Field(
        default=500,
        description="Deadline for the compliance check before an action executes",
    )
    action_timeout_ms: int = Field(
        default=750,
        description="Deadline for executing a remediation action",
    )
    default_transaction_window_days: int = Field(
        default=90,
        ge=1,
        le=365,
        description="Transaction history window for the standard workflow",
    )

    # Circuit Breaker
    circuit_breaker_failure_threshold: int = Field(
        default=3,
        description="Consecutive failures before a step's breaker opens",
    )
    circuit_breaker_cooldown_seconds: float = Field(
        default=30.0,
        description="How long an open breaker skips calls before closing again",
    )

    # Caches
    compliance_cache_ttl_seconds: float = Field(
        default=300.0,
        description="Lifetime of cached compliance validation results",
    )
    compliance_cache_max_entries: int = Field(
        default=10_000,
        description="Maximum cached compliance validation results",
    )
    kb_cache_ttl_seconds: float = Field(
        default=3600.0,
        description="Lifetime of cached knowledge-base lookups for canned workflows",
    )
    otp_ttl_seconds: float = Field(
        default=300.0,
        description="Lifetime of an issued one-time passcode",
    )

    # Knowledge Base
    kb_max_results: int = Field(
        default=3,
        description="Maximum snippets returned by a knowledge-base search",
    )

    # PII Redaction
    pii_replacement: str = Field(
        default="****REDACTED****",
        description="Replacement text for redacted PII",
    )

    # Demo Data
    seed_customers_count: int = Field(
        default=25,
        description="Number of synthetic customers to generate",
    )
    seed_transactions_per_customer: int = Field(
        default=12,
        description="Number of routine synthetic transactions per customer",
    )

    @field_validator("step_timeout_ms", "compliance_timeout_ms", "action_timeout_ms")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Ensure step deadlines are positive."""
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("circuit_breaker_failure_threshold")
    @classmethod
    def validate_failure_threshold(cls, v: int) -> int:
        """A breaker must tolerate at least one failure."""
        if v < 1:
            raise ValueError("circuit_breaker_failure_threshold must be at least 1")
        return v


# Global settings instance
settings = Settings()
