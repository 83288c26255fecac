"""
Gateway Client
Version: 2.0

HTTP client the booking front end uses to talk to the proxy.
DEPENDS ON: config.py, services/errors.py, services/response_shapes.py

- Every call is independent (no retries, no shared state besides the pool)
- Transport failures surface as NetworkError
- Non-2xx answers surface as UpstreamHTTPError with the status preserved
"""

import logging
import random
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from config import get_settings
from services.errors import NetworkError, UpstreamHTTPError, ValidationError
from services.response_shapes import error_message, parse_body

logger = logging.getLogger(__name__)
settings = get_settings()

GATEWAY_PATH = "/api/n8n"

# Router key mirrored next to each action for the n8n workflow
ACTION_COMMANDS: Dict[str, str] = {
    "booking_lock": "/slot_booking",
    "booking_submit": "/slot_booking",
    "slotcheck_time": "/slot_check",
    "slotcheck_creators": "/slot_check",
    "delete_booking": "/delete_booking",
    "free_booking": "/free_booking",
    "update_booking": "/update_booking",
    "attendance_update": "/attendance_update",
}


class HttpMethod(Enum):
    GET = "GET"
    POST = "POST"


def new_request_id() -> str:
    """Idempotency key for one submission attempt."""
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        return f"{int(time.time() * 1000)}-{random.randint(0, 999999)}"


class GatewayClient:
    """
    Client for the proxy surface (/api/n8n, /api/login, /api/attendance, ...)
    and for the Apps Script read endpoints handed out by /api/config.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            base_url: Proxy base URL (defaults to settings)
            timeout: Timeout for gateway calls in seconds
            read_timeout: Timeout for read paths in seconds
            transport: Custom httpx transport (tests)
        """
        self.base_url = (base_url or settings.PROXY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GATEWAY_TIMEOUT
        self.read_timeout = read_timeout or settings.READ_TIMEOUT

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            follow_redirects=True,
            transport=transport,
        )

        logger.info(f"GatewayClient initialized: {self.base_url}")

    async def post_to_gateway(
        self,
        payload: Dict[str, Any],
        timeout: Optional[float] = None
    ) -> Any:
        """
        POST an action payload to the n8n gateway.

        Args:
            payload: JSON body with an `action` discriminator
            timeout: Override timeout

        Returns:
            Parsed response body

        Raises:
            ValidationError: payload has no action
            NetworkError: timeout or connection failure
            UpstreamHTTPError: non-2xx status
        """
        action = payload.get("action")
        if not action:
            raise ValidationError("Gateway payload requires an action")

        body = dict(payload)
        if not body.get("command") and action in ACTION_COMMANDS:
            body["command"] = ACTION_COMMANDS[action]

        headers = {}
        if body.get("request_id"):
            headers["x-request-id"] = str(body["request_id"])

        logger.debug(f"Gateway request: action={action}")
        return await self.execute(
            HttpMethod.POST, GATEWAY_PATH, body=body, headers=headers,
            timeout=timeout or self.timeout
        )

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """GET on a read path. Accepts a proxy path or an absolute URL."""
        return await self.execute(
            HttpMethod.GET, url, params=params, timeout=timeout or self.read_timeout
        )

    async def post_json(
        self,
        url: str,
        body: Dict[str, Any],
        timeout: Optional[float] = None
    ) -> Any:
        return await self.execute(
            HttpMethod.POST, url, body=body, timeout=timeout or self.timeout
        )

    async def execute(
        self,
        method: HttpMethod,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)

        clean_params = None
        if params:
            clean_params = {k: v for k, v in params.items() if v is not None}

        try:
            response = await self.client.request(
                method.value,
                url,
                params=clean_params,
                json=body,
                headers=request_headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Request timed out: {method.value} {url}: {e}")
            raise NetworkError("Request timed out", timeout=True) from e
        except httpx.RequestError as e:
            logger.warning(f"Network error: {method.value} {url}: {e}")
            raise NetworkError(str(e) or "Network error") from e

        data = parse_body(response)

        if not response.is_success:
            message = error_message(data, f"HTTP {response.status_code}")
            logger.warning(f"Upstream error: {response.status_code} - {message[:200]}")
            raise UpstreamHTTPError(response.status_code, message, body=data)

        return data

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            logger.info("GatewayClient closed")
