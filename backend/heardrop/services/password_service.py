"""
HEARDROP Backend — Password Policy Service
============================================

What:  Strength rules plus a breach lookup against Have I Been Pwned.
Why:   Signup and the live "is this password OK?" check share one policy.
How:   Strength checks are local. The breach lookup uses the Pwned Passwords
       range API with k-anonymity: only the first five hex characters of
       the SHA-1 digest leave the server, and the returned suffixes are
       compared locally.

Failure policy:
    The breach lookup fails OPEN. If the API is down the password is
    accepted on strength alone and a `password_validation_api_error`
    event is written, so signups keep working during an outage.

Abuse protection:
    The public check endpoint is limited per IP (default 10 per minute).
    Exceeding it writes `password_validation_rate_limit` and returns 429.
    Lengths outside 1..256 are treated as probing and audited as
    `password_validation_suspicious`.
"""

import hashlib
import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from heardrop.config import settings
from heardrop.exceptions import (
    CircuitBreakerOpenError,
    RateLimitExceededError,
    UpstreamServiceError,
)
from heardrop.middleware.rate_limit import SlidingWindowLimiter
from heardrop.schemas.auth import BreachCheckResponse, PasswordCheckResponse, PasswordChecks
from heardrop.services.audit_service import audit_service
from heardrop.services.resilience import CircuitBreaker, is_transient_http_error

logger = logging.getLogger(__name__)

MIN_LENGTH = 8
MAX_ACCEPTED_LENGTH = 256
SPECIAL_CHARACTERS = frozenset("!@#$%^&*()_+-=[]{};':\"\\|,.<>/?")


def strength_checks(password: str) -> PasswordChecks:
    return PasswordChecks(
        min_length=len(password) >= MIN_LENGTH,
        has_upper_case=any(c.isupper() for c in password),
        has_lower_case=any(c.islower() for c in password),
        has_number=any(c.isdigit() for c in password),
        has_special_char=any(c in SPECIAL_CHARACTERS for c in password),
    )


def is_strong(checks: PasswordChecks) -> bool:
    return all(checks.model_dump().values())


class PasswordService:

    def __init__(
        self,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        breach_check_enabled: Optional[bool] = None,
    ):
        self.api_url = (api_url or settings.pwned_passwords_url).rstrip("/")
        self._transport = transport
        self.breach_check_enabled = (
            settings.breach_check_enabled if breach_check_enabled is None else breach_check_enabled
        )
        self.limiter = SlidingWindowLimiter(
            limit=settings.password_check_limit,
            window_seconds=settings.password_check_window,
        )
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
            name="Pwned Passwords",
        )

    # ── Breach lookup ─────────────────────────────────────────────────────

    async def breach_count(self, password: str) -> int:
        """
        How many times the password appears in the Pwned Passwords corpus.

        Raises:
            UpstreamServiceError / CircuitBreakerOpenError when the lookup
            cannot be completed. Callers decide whether to fail open.
        """
        digest = hashlib.sha1(password.encode("utf-8")).hexdigest().upper()
        prefix, suffix = digest[:5], digest[5:]

        self.circuit_breaker.can_execute()
        try:
            body = await self._fetch_range(prefix)
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            logger.warning("Pwned Passwords lookup failed: %s", str(e))
            raise UpstreamServiceError(
                message="The breach check service is unavailable",
                service="pwned_passwords",
                context={"error_type": type(e).__name__},
            )
        self.circuit_breaker.record_success()

        for line in body.splitlines():
            candidate, _, count = line.strip().partition(":")
            if candidate.upper() == suffix:
                try:
                    return int(count)
                except ValueError:
                    return 1
        return 0

    async def check_breach(self, password: str) -> BreachCheckResponse:
        """Standalone breach lookup; reports `available=False` instead of failing."""
        try:
            count = await self.breach_count(password)
        except (UpstreamServiceError, CircuitBreakerOpenError):
            return BreachCheckResponse(breached=False, count=0, available=False)
        return BreachCheckResponse(breached=count > 0, count=count, available=True)

    @retry(
        retry=retry_if_exception(is_transient_http_error),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _fetch_range(self, prefix: str) -> str:
        async with httpx.AsyncClient(
            timeout=settings.http_timeout, transport=self._transport
        ) as client:
            response = await client.get(
                f"{self.api_url}/range/{prefix}",
                headers={"Add-Padding": "true", "User-Agent": "heardrop-password-check"},
            )
            response.raise_for_status()
            return response.text

    # ── Policy ────────────────────────────────────────────────────────────

    async def evaluate(
        self,
        db: AsyncSession,
        password: str,
        ip_address: Optional[str] = None,
        email: Optional[str] = None,
    ) -> PasswordCheckResponse:
        """
        Apply the full policy without the per-IP limit (used by signup).

        Returns a response with valid=False rather than raising, so the
        caller chooses how to surface the failure.
        """
        if not 1 <= len(password) <= MAX_ACCEPTED_LENGTH:
            await audit_service.log_event(
                db,
                "password_validation_suspicious",
                user_email=email,
                ip_address=ip_address,
                event_data={"length": len(password)},
            )
            return PasswordCheckResponse(valid=False, message="Invalid password length")

        checks = strength_checks(password)
        if not is_strong(checks):
            return PasswordCheckResponse(
                valid=False,
                message="Password does not meet strength requirements",
                checks=checks,
            )

        if not self.breach_check_enabled:
            return PasswordCheckResponse(valid=True, message="Password is strong", checks=checks)

        try:
            count = await self.breach_count(password)
        except (UpstreamServiceError, CircuitBreakerOpenError) as e:
            await audit_service.log_event(
                db,
                "password_validation_api_error",
                user_email=email,
                ip_address=ip_address,
                event_data={"error": e.message},
            )
            return PasswordCheckResponse(
                valid=True,
                message="Password validated (breach check unavailable)",
                checks=checks,
                breach_check="unavailable",
            )

        if count > 0:
            await audit_service.log_event(
                db,
                "breached_password_attempt",
                user_email=email,
                ip_address=ip_address,
                event_data={"breach_count": count},
            )
            return PasswordCheckResponse(
                valid=False,
                message=(
                    f"This password has appeared in {count:,} data breaches. "
                    "Please choose a different password."
                ),
                checks=checks,
                breached=True,
                breach_count=count,
                breach_check="breached",
            )

        return PasswordCheckResponse(
            valid=True,
            message="Password is strong and has not appeared in known breaches",
            checks=checks,
            breach_check="passed",
        )

    async def validate(
        self,
        db: AsyncSession,
        password: str,
        ip_address: str,
    ) -> PasswordCheckResponse:
        """
        Public password check: per-IP limit, then the full policy.

        Raises:
            RateLimitExceededError: more than password_check_limit calls
                from this IP inside the window (the event is committed first).
        """
        retry_after = self.limiter.hit(ip_address)
        if retry_after is not None:
            await audit_service.log_event(
                db,
                "password_validation_rate_limit",
                ip_address=ip_address,
                event_data={"limit": self.limiter.limit, "window": self.limiter.window_seconds},
            )
            await db.commit()
            raise RateLimitExceededError(
                retry_after=self.limiter.window_seconds,
                message="Too many password checks. Please try again later.",
            )

        return await self.evaluate(db, password, ip_address=ip_address)


password_service = PasswordService()
