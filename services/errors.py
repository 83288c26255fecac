"""
Error Taxonomy
Version: 1.0

Exceptions shared by the client controllers and the proxy.
NO DEPENDENCIES on other services.

Every error renders to the uniform body {"ok": false, "message": ...}
that the proxy returns and the controllers surface to the user.
"""

from typing import Any, Dict, Optional


class BookingAppError(Exception):
    """Base error with a user-facing message."""

    error_code = "ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "message": self.message}


class ValidationError(BookingAppError):
    """Local pre-flight check failed. Raised before any network call."""

    error_code = "VALIDATION_ERROR"


class NetworkError(BookingAppError):
    """Timeout, DNS or connection failure."""

    error_code = "NETWORK_ERROR"

    def __init__(self, message: str, timeout: bool = False):
        super().__init__(message)
        self.timeout = timeout

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "message": self.message, "timeout": self.timeout}


class UpstreamHTTPError(BookingAppError):
    """Upstream answered with a non-2xx status."""

    error_code = "UPSTREAM_HTTP_ERROR"

    def __init__(self, status_code: int, message: Optional[str] = None, body: Any = None):
        super().__init__(message or f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class UpstreamRejectedError(BookingAppError):
    """Upstream answered 2xx but reported ok=false or omitted the expected rows."""

    error_code = "UPSTREAM_REJECTED"


class MalformedResponseError(BookingAppError):
    """Upstream body does not have the expected shape."""

    error_code = "MALFORMED_RESPONSE"


class LockConflictError(BookingAppError):
    """Someone else holds the advisory lock for the slot ("Ongoing Booking")."""

    error_code = "LOCK_CONFLICT"


class PermissionDeniedError(BookingAppError):
    """Current user may not perform this booking mutation."""

    error_code = "PERMISSION_DENIED"


class AuthRequiredError(BookingAppError):
    """No session stored for this client."""

    error_code = "AUTH_REQUIRED"

    def __init__(self, message: str = "Login required"):
        super().__init__(message)
