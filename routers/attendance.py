"""
Attendance Router
Version: 2.0

GET/POST /api/attendance: same-origin proxy to the attendance script.
"""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from config import get_settings
from routers.deps import error_response, get_upstream, misconfigured, read_json_body
from schemas import AttendanceWriteRequest
from services.errors import NetworkError
from services.upstream import UpstreamClient, UpstreamResult

router = APIRouter()
logger = structlog.get_logger("attendance")
settings = get_settings()

REQUIRED_FIELDS_MESSAGE = "Missing required fields: action, date, employee, attendance"


def _script_error(result: UpstreamResult) -> JSONResponse:
    logger.error("Attendance script error", status_code=result.status_code, body=result.text[:200])
    return error_response(
        result.status_code,
        f"Google Apps Script error: {result.status_code}",
        error=result.text,
    )


@router.get("/attendance")
async def read_attendance(
    employee: Optional[str] = None,
    upstream: UpstreamClient = Depends(get_upstream)
):
    if not settings.GOOGLE_ATTENDANCE_SCRIPT_URL:
        return misconfigured("GOOGLE_ATTENDANCE_SCRIPT_URL")
    if not employee:
        return error_response(400, "Missing employee parameter")

    try:
        result = await upstream.request(
            "attendance", "GET", settings.GOOGLE_ATTENDANCE_SCRIPT_URL,
            params={"action": "read", "employee": employee},
            timeout=settings.SCRIPT_TIMEOUT
        )
    except NetworkError as e:
        return error_response(500, "Internal server error", error=e.message)

    if not result.ok:
        return _script_error(result)

    data = result.loads()
    if data is None:
        logger.warning("Attendance read returned non-JSON")
        data = {}
    return JSONResponse(status_code=200, content=data)


@router.post("/attendance")
async def write_attendance(request: Request, upstream: UpstreamClient = Depends(get_upstream)):
    if not settings.GOOGLE_ATTENDANCE_SCRIPT_URL:
        return misconfigured("GOOGLE_ATTENDANCE_SCRIPT_URL")

    body, invalid = await read_json_body(request)
    if invalid:
        return invalid
    if not isinstance(body, dict):
        return error_response(400, REQUIRED_FIELDS_MESSAGE)

    try:
        record = AttendanceWriteRequest.model_validate(body)
    except PydanticValidationError:
        return error_response(400, REQUIRED_FIELDS_MESSAGE)

    try:
        result = await upstream.request(
            "attendance", "POST", settings.GOOGLE_ATTENDANCE_SCRIPT_URL,
            body=record.to_upstream(), timeout=settings.SCRIPT_TIMEOUT
        )
    except NetworkError as e:
        return error_response(500, "Internal server error", error=e.message)

    if not result.ok:
        return _script_error(result)

    data = result.loads()
    if data is None:
        data = {"ok": result.ok, "message": result.text}

    logger.info("Attendance written", action=record.action.value, date=record.date)
    return JSONResponse(status_code=200, content=data)
