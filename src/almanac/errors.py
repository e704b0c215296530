"""
Almanac error taxonomy.

Scheduler, queue and engine failures are all expressed through these types so
callers can tell a malformed schedule from a provider outage from a rate limit.
"""

from __future__ import annotations


class AlmanacError(Exception):
    """Base exception for Almanac errors."""

    pass


class ConfigError(AlmanacError):
    """Settings file or environment override is invalid."""

    pass


class InvalidScheduleError(AlmanacError, ValueError):
    """Cron expression could not be parsed."""

    def __init__(self, expr: str, reason: str) -> None:
        self.expr = expr
        self.reason = reason
        super().__init__(f"Invalid cron expression '{expr}': {reason}")


class ConfigNotFoundError(AlmanacError, LookupError):
    """Research config does not exist (no audit row is written for this)."""

    def __init__(self, config_id: str) -> None:
        self.config_id = config_id
        super().__init__(f"Config not found: {config_id}")


class ProviderError(AlmanacError):
    """Non-retryable provider failure (bad request, auth, malformed response)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RateLimitError(ProviderError):
    """Provider rejected the request because of rate limiting (retryable)."""

    pass


class ResearchTimeoutError(ProviderError, TimeoutError):
    """Background operation did not reach a terminal state within the poll budget."""

    pass


class ParseError(AlmanacError):
    """Provider output is not the expected JSON payload."""

    pass


class InvalidFeedbackError(AlmanacError, ValueError):
    """Source feedback is malformed (unknown rating or empty domain)."""

    pass


class AuditEntryFinalizedError(AlmanacError):
    """Attempted to mutate an audit entry after it reached a terminal status."""

    def __init__(self, entry_id: str, fields: list[str]) -> None:
        self.entry_id = entry_id
        self.fields = fields
        super().__init__(
            f"Audit entry {entry_id} is finalized; cannot update {', '.join(sorted(fields))}"
        )


def is_rate_limit_error(error: BaseException) -> bool:
    """True when the error carries a 429 / rate-limit signature."""
    if isinstance(error, RateLimitError):
        return True
    if isinstance(error, ProviderError) and error.status_code == 429:
        return True
    message = str(error).lower()
    return "429" in message or "rate limit" in message
