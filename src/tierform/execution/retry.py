"""Retry policy for transient provider errors."""

from typing import Optional
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from ..config import RetrySettings
from ..utils.errors import TransientProviderError
from ..utils.logging import get_logger

logger = get_logger("execution.retry")


def _log_retry(retry_state) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Transient provider error (attempt {retry_state.attempt_number}), retrying: {error}")


def build_retrying(settings: Optional[RetrySettings] = None) -> Retrying:
    """Bounded exponential backoff; only TransientProviderError is retried."""
    settings = settings or RetrySettings()
    return Retrying(
        retry=retry_if_exception_type(TransientProviderError),
        stop=stop_after_attempt(settings.max_attempts),
        wait=wait_exponential(multiplier=settings.backoff_multiplier, max=settings.backoff_max_seconds),
        before_sleep=_log_retry,
        reraise=True,
    )
