"""
Monitoring and error tracking configuration.

Integrates Sentry for error tracking when SENTRY_DSN is configured. Without
a DSN, or without sentry-sdk installed, every function here is a no-op.
"""

import logging
from typing import Optional

from app.config import settings

logger = logging.getLogger(__name__)

_sentry_enabled = False


def setup_sentry() -> Optional[object]:
    """
    Initialize Sentry for error tracking if DSN is configured.

    Returns:
        Sentry SDK module or None if not configured
    """
    global _sentry_enabled

    if not settings.sentry_dsn:
        logger.info("Sentry not configured (SENTRY_DSN not set)")
        return None

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            integrations=[
                FastApiIntegration(),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR,
                ),
            ],
            traces_sample_rate=0.1 if settings.environment == "production" else 1.0,
            release=f"sequential-thinking@{settings.environment}",
            ignore_errors=[
                KeyboardInterrupt,
                SystemExit,
            ],
        )

        _sentry_enabled = True
        logger.info(f"Sentry initialized for environment: {settings.environment}")
        return sentry_sdk

    except ImportError:
        logger.warning("sentry-sdk not installed. Install with: pip install sentry-sdk[fastapi]")
        return None


def capture_exception(error: Exception, context: Optional[dict] = None) -> None:
    """
    Capture exception in Sentry if configured.

    Args:
        error: Exception to capture
        context: Additional context to include
    """
    if not _sentry_enabled:
        return

    import sentry_sdk

    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in (context or {}).items():
                scope.set_extra(key, value)
            sentry_sdk.capture_exception(error)
    except Exception as e:
        # Reporting must never turn into a second failure for the caller
        logger.warning(f"Failed to report exception to Sentry: {e}")
