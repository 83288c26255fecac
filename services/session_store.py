"""
Session Store
Version: 2.0

Login against the proxy and the minimal session kept on the client.
DEPENDS ON: services/gateway_client.py, services/local_store.py
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from security import mask_email
from services.errors import AuthRequiredError, BookingAppError
from services.gateway_client import GatewayClient
from services.local_store import LocalStore

logger = logging.getLogger(__name__)

SESSION_KEY = "cf_user"
LOGIN_PATH = "/api/login"


@dataclass
class Session:
    """Logged-in user. Never carries the password."""
    email: str
    name: str
    role: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            email=str(data.get("email") or ""),
            name=str(data.get("name") or ""),
            role=str(data.get("role") or ""),
        )

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @property
    def normalized_role(self) -> str:
        """Role as the My Day script expects it: exactly "creator" or "dop"."""
        return "dop" if "dop" in self.role.lower() else "creator"

    @property
    def is_creator(self) -> bool:
        return self.normalized_role == "creator"


class SessionStore:
    """
    Session lifecycle for one client.

    Created on a successful login, persisted under `cf_user`, destroyed on
    logout. No expiry is enforced here.
    """

    def __init__(self, gateway: GatewayClient, store: LocalStore):
        self.gateway = gateway
        self.store = store
        self.last_error: Optional[str] = None

    async def login(self, email: str, password: str) -> Optional[Session]:
        """
        Validate credentials through the proxy.

        Returns:
            Session on success, None on any failure (message in last_error)
        """
        self.last_error = None
        email_normalized = (email or "").strip().lower()
        payload = {"email": email_normalized, "password": password}

        try:
            result = await self.gateway.post_json(LOGIN_PATH, payload)
        except BookingAppError as e:
            logger.warning(f"Login failed for {mask_email(email_normalized)}: {e.message}")
            self.last_error = e.message or "Failed to authenticate. Please try again."
            return None

        if not isinstance(result, dict) or not result.get("ok") or not result.get("user"):
            message = result.get("message") if isinstance(result, dict) else None
            self.last_error = message or "Invalid email or password"
            logger.info(f"Login rejected for {mask_email(email_normalized)}")
            return None

        session = Session.from_dict(result["user"])
        await self.store.set_json(SESSION_KEY, session.to_dict())
        logger.info(f"User logged in: {mask_email(session.email)}")
        return session

    async def get_current_user(self) -> Optional[Session]:
        data = await self.store.get_json(SESSION_KEY)
        if not isinstance(data, dict):
            return None
        return Session.from_dict(data)

    async def is_authenticated(self) -> bool:
        return await self.get_current_user() is not None

    async def logout(self) -> None:
        await self.store.delete(SESSION_KEY)
        logger.info("Session cleared")

    async def require_auth(self) -> Session:
        """Current session, or AuthRequiredError for protected views."""
        session = await self.get_current_user()
        if session is None:
            raise AuthRequiredError()
        return session
