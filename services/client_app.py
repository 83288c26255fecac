"""
Booking Client
Version: 2.0

Composition root of the client side: one Redis-backed local store, one
gateway client, and the controllers built on top of them.
DEPENDS ON: services/gateway_client.py, services/local_store.py,
            services/session_store.py, services/lookups.py and the controllers
"""

import logging
from datetime import datetime
from typing import Callable, Optional

import redis.asyncio as aioredis

from config import get_settings
from services.attendance import AttendanceController
from services.booking_workflow import BookingWorkflow, ReloadCallback
from services.gateway_client import GatewayClient
from services.local_store import FreedBookings, LocalStore
from services.lookups import ClientConfig, LookupClient
from services.my_day import ConfirmCallback, MyDayController
from services.session_store import Session, SessionStore
from services.slot_check import SlotCheckController

logger = logging.getLogger(__name__)
settings = get_settings()


async def connect_redis(url: Optional[str] = None):
    """Connected Redis client, or RuntimeError when Redis is unreachable."""
    try:
        client = aioredis.from_url(
            url or settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        await client.ping()
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise RuntimeError(f"Redis not available: {e}") from e
    logger.info("Redis connected")
    return client


class BookingClient:
    """
    Everything one device needs to run the booking front end.

    Usage:
        client = await BookingClient.connect("device-1", confirm=ask_user)
        session = await client.sessions.login(email, password)
        workflow = client.booking(session)
    """

    def __init__(
        self,
        redis_client,
        gateway: GatewayClient,
        client_id: str,
        confirm: ConfirmCallback,
        on_reload: Optional[ReloadCallback] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.redis = redis_client
        self.gateway = gateway
        self.confirm = confirm
        self.on_reload = on_reload
        self.clock = clock

        self.store = LocalStore(redis_client, client_id)
        self.freed = FreedBookings(self.store)
        self.sessions = SessionStore(gateway, self.store)
        self.config = ClientConfig(gateway)
        self.lookups = LookupClient(gateway, self.config)

    @classmethod
    async def connect(
        cls,
        client_id: str,
        confirm: ConfirmCallback,
        on_reload: Optional[ReloadCallback] = None,
        redis_url: Optional[str] = None,
        base_url: Optional[str] = None
    ) -> "BookingClient":
        redis_client = await connect_redis(redis_url)
        gateway = GatewayClient(base_url=base_url)
        return cls(redis_client, gateway, client_id, confirm, on_reload=on_reload)

    def booking(self, session: Session) -> BookingWorkflow:
        return BookingWorkflow(self.gateway, session, on_reload=self.on_reload, clock=self.clock)

    def my_day(self, session: Session) -> MyDayController:
        return MyDayController(
            self.gateway, self.config, session, self.freed, self.confirm, clock=self.clock
        )

    def attendance(self, session: Session) -> AttendanceController:
        return AttendanceController(
            self.gateway, session, my_day=self.my_day(session), clock=self.clock
        )

    def slot_check(self, session: Session) -> SlotCheckController:
        return SlotCheckController(self.gateway, session, lookups=self.lookups, clock=self.clock)

    async def close(self) -> None:
        await self.gateway.close()
        if self.redis is not None:
            await self.redis.aclose()
        logger.info("Booking client closed")
