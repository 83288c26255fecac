"""
Security Module
Version: 2.0

Password hashing, credential masking and login rate limiting.
DEPENDS ON: config.py, services/metrics.py
"""

import hashlib
import logging
import time

from fastapi import HTTPException, Request

from config import get_settings
from services.metrics import LOGIN_ATTEMPTS

settings = get_settings()
logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """SHA-256 hex digest forwarded to the auth script as password_hash."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def mask_email(email: str) -> str:
    """Mask email for logging."""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = None, window: int = None):
        self.limit = limit or settings.RATE_LIMIT_PER_MINUTE
        self.window = window or settings.RATE_LIMIT_WINDOW
        self._requests: dict = {}

    def is_allowed(self, identifier: str) -> bool:
        now = time.time()
        window_start = now - self.window

        recent = [t for t in self._requests.get(identifier, []) if t > window_start]
        if len(recent) >= self.limit:
            self._requests[identifier] = recent
            return False

        recent.append(now)
        self._requests[identifier] = recent
        return True

    def reset(self) -> None:
        self._requests.clear()


login_rate_limiter = RateLimiter()


async def enforce_login_rate_limit(request: Request) -> None:
    """
    FastAPI dependency guarding /api/login.

    Raises HTTPException(429) once a client exceeds the window budget.
    """
    identifier = client_identifier(request)
    if not login_rate_limiter.is_allowed(identifier):
        LOGIN_ATTEMPTS.labels(outcome="rate_limited").inc()
        logger.warning(f"Login rate limit exceeded for {identifier}")
        raise HTTPException(status_code=429, detail="Too many login attempts. Please try again later.")
