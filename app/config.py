"""
Application configuration with validation and environment management.

This module provides centralized configuration for the thinking service.
All configuration is validated on startup to catch errors early: memory
limits of zero or below are rejected here rather than at first use.
"""

import os
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from app.thinking.core_types import BranchOverflowPolicy, EvictionLimits


class Settings(BaseSettings):
    """Application settings with validation."""

    # Database
    database_url: str = "sqlite:///./sequences.db"

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"
    disable_thought_logging: bool = False

    # Memory bounds for the in-memory thought store
    max_thought_history: int = Field(default=1000, gt=0)
    max_branches: int = Field(default=50, gt=0)
    max_thoughts_per_branch: int = Field(default=100, gt=0)
    branch_overflow_policy: BranchOverflowPolicy = BranchOverflowPolicy.EVICT

    # Sessions (HTTP adapter)
    session_ttl_seconds: int = Field(default=3600, gt=0)

    # Monitoring (optional)
    sentry_dsn: Optional[str] = None
    environment: str = "development"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v.lower()

    def eviction_limits(self) -> EvictionLimits:
        """Build the typed limits object used by the thinking engine."""
        return EvictionLimits(
            max_thought_history=self.max_thought_history,
            max_branches=self.max_branches,
            max_thoughts_per_branch=self.max_thoughts_per_branch,
            branch_overflow_policy=self.branch_overflow_policy,
        )

    def validate_required(self) -> List[str]:
        """
        Validate required settings for production.

        Returns:
            List of missing required settings
        """
        errors = []

        if not self.database_url:
            errors.append("DATABASE_URL is required")
        if self.environment == "production" and self.database_url.startswith("sqlite:///./"):
            errors.append("DATABASE_URL should be an absolute path in production")
        return errors

    class Config:
        env_file = ".env"
        case_sensitive = False
        # Allow reading from environment variables
        extra = "ignore"


# Create settings instance
settings = Settings()

# Validate on import (for production)
if os.getenv("VALIDATE_CONFIG", "false").lower() == "true":
    errors = settings.validate_required()
    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")
