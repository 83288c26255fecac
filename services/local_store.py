"""
Local Store
Version: 2.0

Per-client persistent key/value store (the browser's local storage).
NO DEPENDENCIES on other services.

Keys are namespaced by client id so two devices never share a session or
a freed-booking ledger.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

FREED_BOOKINGS_KEY = "freedBookings"


class LocalStore:
    """Redis JSON wrapper scoped to one client."""

    KEY_PREFIX = "cf_local:"

    def __init__(self, redis_client, client_id: str, ttl: Optional[int] = None):
        """
        Args:
            redis_client: Redis async client
            client_id: Device/browser identifier
            ttl: Expiry in seconds for every key. None or 0 stores without expiry
        """
        self.redis = redis_client
        self.client_id = client_id
        self.ttl = ttl if ttl is not None else settings.LOCAL_STORE_TTL

    def _key(self, name: str) -> str:
        return f"{self.KEY_PREFIX}{self.client_id}:{name}"

    async def get_json(self, name: str) -> Optional[Any]:
        try:
            data = await self.redis.get(self._key(name))
            if data:
                return json.loads(data)
            return None
        except Exception as e:
            logger.warning(f"Local store read failed ({name}): {e}")
            return None

    async def set_json(self, name: str, value: Any) -> bool:
        try:
            if self.ttl:
                await self.redis.setex(self._key(name), self.ttl, json.dumps(value))
            else:
                await self.redis.set(self._key(name), json.dumps(value))
            return True
        except Exception as e:
            logger.warning(f"Local store write failed ({name}): {e}")
            return False

    async def delete(self, name: str) -> bool:
        try:
            await self.redis.delete(self._key(name))
            return True
        except Exception as e:
            logger.warning(f"Local store delete failed ({name}): {e}")
            return False


class FreedBookings:
    """
    Ledger of users who released themselves from a booking on this device.

    Stored as {bookingId: "name1, name2"}. Only this client reads it; the
    upstream never sees it. Concurrent writers on the same client id race
    and the last write wins.
    """

    def __init__(self, store: LocalStore):
        self.store = store

    async def load(self) -> Dict[str, str]:
        data = await self.store.get_json(FREED_BOOKINGS_KEY)
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    @staticmethod
    def _split(value: str) -> List[str]:
        return [n.strip() for n in (value or "").split(",") if n.strip()]

    async def has_freed(self, booking_id: str, name: str) -> bool:
        ledger = await self.load()
        wanted = (name or "").strip().lower()
        return any(n.lower() == wanted for n in self._split(ledger.get(str(booking_id), "")))

    async def mark_freed(self, booking_id: str, name: str) -> Dict[str, str]:
        ledger = await self.load()
        key = str(booking_id)
        names = self._split(ledger.get(key, ""))
        if not any(n.lower() == name.strip().lower() for n in names):
            names.append(name.strip())
        ledger[key] = ", ".join(names)
        await self.store.set_json(FREED_BOOKINGS_KEY, ledger)
        logger.info(f"Marked booking {key} freed for {name}")
        return ledger
