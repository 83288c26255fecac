"""
Lookups
Version: 2.0

Client configuration and the read-only list endpoints.
DEPENDS ON: services/gateway_client.py, services/response_shapes.py

- ClientConfig: GET /api/config once, cached for the instance lifetime
- LookupClient: creators list and Brand/IP lists from their scripts
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from services.errors import BookingAppError, ValidationError
from services.gateway_client import GatewayClient
from services.response_shapes import normalize_named_list

logger = logging.getLogger(__name__)

CONFIG_PATH = "/api/config"

BRAND = "Brand"
IP = "IP"


class ClientConfig:
    """Script URLs the client needs, fetched from the proxy once."""

    def __init__(self, gateway: GatewayClient):
        self.gateway = gateway
        self._config: Optional[Dict[str, Any]] = None
        self._lock = asyncio.Lock()

    async def load(self) -> Optional[Dict[str, Any]]:
        """
        Cached config, or None when the proxy could not provide it.

        A failed load is not cached; the next call tries again.
        """
        if self._config is not None:
            return self._config

        async with self._lock:
            if self._config is not None:
                return self._config
            try:
                data = await self.gateway.get_json(CONFIG_PATH)
            except BookingAppError as e:
                logger.error(f"Failed to load configuration: {e.message}")
                return None
            if not isinstance(data, dict):
                logger.error("Configuration response is not an object")
                return None
            self._config = data
            logger.info("Client configuration loaded")
            return self._config

    async def get(self, key: str) -> Optional[str]:
        config = await self.load()
        if not config:
            return None
        return config.get(key)

    async def require(self, key: str) -> str:
        value = await self.get(key)
        if not value:
            raise ValidationError(f"{key} not configured")
        return value


class LookupClient:
    """Creators and Brand/IP names for the booking form and slot check."""

    def __init__(self, gateway: GatewayClient, config: ClientConfig):
        self.gateway = gateway
        self.config = config

    async def get_creators(self) -> List[str]:
        url = await self.config.require("google_creators_script_url")
        data = await self.gateway.get_json(url)
        return normalize_named_list(data, "creators")

    async def get_brand_ip_names(self, kind: str) -> List[str]:
        """kind is "Brand" or "IP"."""
        if kind not in (BRAND, IP):
            raise ValidationError(f"Unknown list type: {kind}")
        url = await self.config.require("google_brandip_script_url")
        data = await self.gateway.get_json(url, params={"brandips": kind})
        return normalize_named_list(data, kind)
