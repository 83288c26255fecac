"""
Auth Router
Version: 2.0

POST /api/login: hashes the password and asks the auth script to validate it.
The plain password never leaves this process and is never logged.
"""
import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from config import get_settings
from routers.deps import error_response, get_upstream, misconfigured, read_json_body
from schemas import LoginRequest
from security import enforce_login_rate_limit, hash_password, mask_email
from services.errors import NetworkError
from services.metrics import LOGIN_ATTEMPTS
from services.upstream import UpstreamClient

router = APIRouter()
logger = structlog.get_logger("auth")
settings = get_settings()


@router.post("/login", dependencies=[Depends(enforce_login_rate_limit)])
async def login(request: Request, upstream: UpstreamClient = Depends(get_upstream)):
    body, invalid = await read_json_body(request)
    if invalid:
        return invalid
    if not isinstance(body, dict):
        return error_response(400, "Invalid JSON")

    try:
        credentials = LoginRequest.model_validate(body)
    except PydanticValidationError:
        return error_response(400, "Missing email or password")
    if not credentials.email or not credentials.password:
        return error_response(400, "Missing email or password")

    if not settings.GOOGLE_AUTH_SCRIPT_URL:
        return misconfigured("GOOGLE_AUTH_SCRIPT_URL")

    payload = {"email": credentials.email, "password_hash": hash_password(credentials.password)}
    try:
        result = await upstream.request(
            "auth", "POST", settings.GOOGLE_AUTH_SCRIPT_URL,
            body=payload, timeout=settings.SCRIPT_TIMEOUT
        )
    except NetworkError as e:
        LOGIN_ATTEMPTS.labels(outcome="error").inc()
        return error_response(500, e.message or "Auth request failed")

    data = result.loads()

    if not result.ok:
        LOGIN_ATTEMPTS.labels(outcome="error").inc()
        message = data.get("message") if isinstance(data, dict) else None
        logger.warning("Auth script error", status_code=result.status_code, email=mask_email(credentials.email))
        return error_response(result.status_code, message or "Auth failed")

    if not isinstance(data, dict):
        LOGIN_ATTEMPTS.labels(outcome="error").inc()
        return error_response(500, "Auth request failed: invalid response")

    outcome = "success" if data.get("ok") else "rejected"
    LOGIN_ATTEMPTS.labels(outcome=outcome).inc()
    logger.info("Login processed", outcome=outcome, email=mask_email(credentials.email))
    return JSONResponse(status_code=200, content=data)
