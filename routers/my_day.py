"""
My Day Router
Version: 2.0

GET /api/google-script: same-origin proxy to the My Day bookings script.
"""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from config import get_settings
from routers.deps import error_response, get_upstream, misconfigured
from services.errors import NetworkError
from services.upstream import UpstreamClient

router = APIRouter()
logger = structlog.get_logger("my_day")
settings = get_settings()


@router.get("/google-script")
async def fetch_bookings(
    employee: Optional[str] = None,
    name: Optional[str] = None,
    role: Optional[str] = None,
    upstream: UpstreamClient = Depends(get_upstream)
):
    if not employee:
        return error_response(400, "Missing employee parameter")
    if not settings.GOOGLE_MYDAY_SCRIPT_URL:
        return misconfigured("GOOGLE_MYDAY_SCRIPT_URL")

    params = {"employee": employee, "key": settings.BOOKING_API_KEY}
    if name:
        params["name"] = name
    if role:
        params["role"] = role

    try:
        result = await upstream.request(
            "myday", "GET", settings.GOOGLE_MYDAY_SCRIPT_URL,
            params=params, timeout=settings.SCRIPT_TIMEOUT
        )
    except NetworkError as e:
        return error_response(500, f"Failed to fetch from Google Apps Script: {e.message}")

    data = result.loads()
    if data is None:
        logger.warning("My Day script returned non-JSON", status_code=result.status_code)
        data = []
    return JSONResponse(status_code=result.status_code, content=data)
