"""
HEARDROP Backend — Outbound Call Resilience
=============================================

What:  Circuit breaker and the transient-error predicate shared by every
       client of an external provider (Mapbox, Pwned Passwords, Gemini).
Why:   When a provider is down, requests should fail instantly instead of
       queueing behind timeouts and retries.
How:   Each provider client owns one CircuitBreaker instance and wraps its
       raw call in a tenacity @retry that only retries transient errors.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
    2. Circuit breaker per provider to stop hammering a failing upstream
    3. Per-request timeout on the HTTP client
"""

import logging
import time
from typing import Optional

import httpx

from heardrop.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    Implements the circuit breaker pattern to prevent cascade failures.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Thread Safety:
        Not thread-safe (simple counters). Fine for a single uvicorn
        process; multi-worker deployments need shared state.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        name: str = "external service",
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True if the request can proceed.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker [%s] transitioning to HALF_OPEN after %.1fs",
                    self.name,
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining, service=self.name)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker [%s] transitioning to CLOSED (service recovered)", self.name)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker [%s] returning to OPEN (test request failed)", self.name)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker [%s] OPENING after %d consecutive failures",
                self.name,
                self.failure_count,
            )
            self.state = self.OPEN

    def reset(self) -> None:
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None


def is_transient_http_error(exc: BaseException) -> bool:
    """
    Network failures, timeouts, 429 and 5xx are worth retrying.
    Other 4xx responses (bad token, bad query) will fail the same way again.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError))
