"""
Upstream Client
Version: 2.0

Server-side HTTP client for the n8n webhook and the Google Apps Scripts.
DEPENDS ON: config.py, services/metrics.py

- One pooled httpx.AsyncClient per process (created in the app lifespan)
- No retries: every forward is a single attempt
- Transport failures raise NetworkError; HTTP statuses are returned as-is
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from config import get_settings
from services.errors import NetworkError
from services.metrics import record_upstream_call

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class UpstreamResult:
    """Raw upstream answer: status, parsed JSON (if any) and the text."""
    status_code: int
    data: Any = None
    text: str = ""
    is_json: bool = False
    json_error: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def loads(self) -> Any:
        """Parsed body regardless of content-type; None when the text is not JSON."""
        if self.data is not None:
            return self.data
        try:
            return json.loads(self.text) if self.text else None
        except ValueError:
            return None


class UpstreamClient:
    """Forwarder used by the proxy routers."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.WEBHOOK_TIMEOUT, connect=10.0),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
            follow_redirects=True,
            transport=transport,
        )
        logger.info("UpstreamClient initialized")

    async def request(
        self,
        integration: str,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> UpstreamResult:
        """
        Single upstream call.

        Args:
            integration: Metrics label ("n8n", "auth", "attendance", "myday")

        Raises:
            NetworkError: timeout or connection failure
        """
        start = time.perf_counter()
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)

        try:
            response = await self.client.request(
                method,
                url,
                params=params,
                content=json.dumps(body) if body is not None else None,
                headers=request_headers,
                timeout=timeout or settings.WEBHOOK_TIMEOUT,
            )
        except httpx.TimeoutException as e:
            record_upstream_call(integration, 0, time.perf_counter() - start)
            logger.error(f"{integration} timeout: {e}")
            raise NetworkError("Request timed out", timeout=True) from e
        except httpx.RequestError as e:
            record_upstream_call(integration, 0, time.perf_counter() - start)
            logger.error(f"{integration} network error: {e}")
            raise NetworkError(str(e) or f"Failed to reach {integration}") from e

        duration = time.perf_counter() - start
        record_upstream_call(integration, response.status_code, duration)
        logger.debug(f"{integration} answered {response.status_code} in {duration * 1000:.0f}ms")

        return self._parse(response)

    @staticmethod
    def _parse(response: httpx.Response) -> UpstreamResult:
        text = response.text
        content_type = response.headers.get("content-type", "").lower()
        result = UpstreamResult(status_code=response.status_code, text=text)

        if "application/json" in content_type:
            result.is_json = True
            try:
                result.data = response.json()
            except ValueError:
                logger.warning(f"Upstream sent invalid JSON (status={response.status_code})")
                result.json_error = True
        return result

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            logger.info("UpstreamClient closed")
