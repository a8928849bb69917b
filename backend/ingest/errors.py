"""Error taxonomy for provider access, reconciliation and sync."""
from __future__ import annotations

from typing import Optional


class ProviderError(Exception):
    """A provider call failed (HTTP error, bad payload). Counts as a breaker failure."""

    def __init__(self, provider: str, message: str, cause: Optional[BaseException] = None) -> None:
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider}: {message}")


class ProviderTimeout(ProviderError):
    """The call did not complete within the per-call timeout."""


class RateLimitExceeded(ProviderError):
    """Local token bucket denied the call; no network I/O happened."""


class ProviderUnavailable(ProviderError):
    """Circuit open or no worker slot; no network I/O happened."""

    def __init__(self, provider: str, message: str, retry_after: float = 0.0) -> None:
        self.retry_after = retry_after
        super().__init__(provider, message)


class ReconciliationConflict(Exception):
    """Concurrent creation kept colliding on a unique constraint."""

    def __init__(self, entity_type: str, key: str, attempts: int) -> None:
        self.entity_type = entity_type
        self.key = key
        self.attempts = attempts
        super().__init__(f"Could not reconcile {entity_type} '{key}' after {attempts} attempts")


class SyncAborted(Exception):
    """Required configuration or reference data is missing; the run stops here."""
