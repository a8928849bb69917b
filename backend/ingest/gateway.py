"""
Provider gateway: the single path for outbound provider calls.

Every call goes through, in order:
  1. rate-limit admission (denied -> fallback, no network I/O)
  2. circuit breaker admission (open -> fallback, no network I/O)
  3. a worker slot from a bounded pool plus a fixed per-call timeout
  4. outcome recording: failures and timeouts feed the breaker and return the
     fallback, successes feed the breaker and the rate-limit accounting

Callers always receive a value of the operation's type; "unavailable" is
indistinguishable from "no data yet" unless they inspect the outcome.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from ingest.errors import ProviderError, ProviderTimeout, ProviderUnavailable, RateLimitExceeded
from ingest.rate_limiter import RateLimiter
from shared.config import Settings, get_settings
from shared.models.enums import GatewayOutcome, Provider
from shared.utils.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from shared.utils.logging import get_logger
from shared.utils.metrics import GATEWAY_OUTCOMES

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class GatewayResult(Generic[T]):
    value: T
    outcome: GatewayOutcome
    error: Optional[ProviderError] = None

    @property
    def ok(self) -> bool:
        return self.outcome == GatewayOutcome.OK


class ProviderGateway:
    """Rate limiting, circuit breaking, bounded concurrency and timeouts for provider calls."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        breakers: CircuitBreakerRegistry,
        timeout_s: float = 10.0,
        max_concurrency: int = 8,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._breakers = breakers
        self._timeout_s = timeout_s
        self._max_concurrency = max_concurrency
        self._slots = asyncio.Semaphore(max_concurrency)

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, clock: Callable[[], float] = time.monotonic
    ) -> "ProviderGateway":
        settings = settings or get_settings()
        return cls(
            rate_limiter=RateLimiter.from_settings(settings, clock=clock),
            breakers=CircuitBreakerRegistry.from_settings(settings, clock=clock),
            timeout_s=settings.provider_request_timeout_s,
            max_concurrency=settings.provider_max_concurrency,
        )

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    def breaker(self, name: str) -> CircuitBreaker:
        return self._breakers.get(name)

    async def call(
        self,
        func: Callable[[], Awaitable[T]],
        *,
        fallback: Callable[[], T],
        operation: str,
        provider: Optional[Provider] = None,
        breaker_name: Optional[str] = None,
    ) -> GatewayResult[T]:
        """
        Execute ``func`` under the provider's protections.

        Args:
            func: Zero-argument coroutine factory performing the network call.
            fallback: Factory for the value returned when the call is denied or fails.
            operation: Operation label for logs and metrics.
            provider: Rate-limit partition; ``None`` skips rate limiting.
            breaker_name: Breaker to use; defaults to the provider name.
        """
        name = breaker_name or (provider.value if provider else operation)
        label = provider.value if provider else name

        if provider is not None and not self._rate_limiter.allow_request(provider):
            return self._fallback(
                label, operation, fallback, GatewayOutcome.RATE_LIMITED,
                RateLimitExceeded(label, f"{operation} denied by local rate limit"),
            )

        breaker = self._breakers.get(name)
        if not breaker.allow_request():
            return self._fallback(
                label, operation, fallback, GatewayOutcome.CIRCUIT_OPEN,
                ProviderUnavailable(label, f"circuit '{name}' is open", retry_after=breaker.retry_after),
            )

        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self._timeout_s)
        except asyncio.CancelledError:
            breaker.release_permit()
            raise
        except asyncio.TimeoutError:
            breaker.release_permit()
            return self._fallback(
                label, operation, fallback, GatewayOutcome.SATURATED,
                ProviderUnavailable(label, f"no worker slot within {self._timeout_s}s"),
            )

        try:
            value = await asyncio.wait_for(func(), timeout=self._timeout_s)
        except asyncio.CancelledError:
            # no outcome to record; hand the half-open trial back
            breaker.release_permit()
            raise
        except asyncio.TimeoutError as exc:
            breaker.record_failure(exc)
            return self._fallback(
                label, operation, fallback, GatewayOutcome.TIMEOUT,
                ProviderTimeout(label, f"{operation} timed out after {self._timeout_s}s", exc),
            )
        except Exception as exc:
            breaker.record_failure(exc)
            error = exc if isinstance(exc, ProviderError) else ProviderError(label, str(exc) or type(exc).__name__, exc)
            return self._fallback(label, operation, fallback, GatewayOutcome.ERROR, error)
        finally:
            self._slots.release()

        breaker.record_success()
        if provider is not None:
            self._rate_limiter.record_request(provider)
        GATEWAY_OUTCOMES.labels(provider=label, operation=operation, outcome=GatewayOutcome.OK.value).inc()
        return GatewayResult(value=value, outcome=GatewayOutcome.OK)

    def _fallback(
        self,
        label: str,
        operation: str,
        fallback: Callable[[], T],
        outcome: GatewayOutcome,
        error: ProviderError,
    ) -> GatewayResult[T]:
        GATEWAY_OUTCOMES.labels(provider=label, operation=operation, outcome=outcome.value).inc()
        logger.warning(
            "provider_call_fallback",
            provider=label,
            operation=operation,
            outcome=outcome.value,
            error=str(error),
        )
        return GatewayResult(value=fallback(), outcome=outcome, error=error)

    def stats(self) -> dict[str, object]:
        return {
            "timeout_s": self._timeout_s,
            "max_concurrency": self._max_concurrency,
            "breakers": self._breakers.snapshot(),
            "quota": {p.value: self._rate_limiter.remaining_quota(p) for p in Provider},
        }
