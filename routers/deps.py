"""
Router Dependencies
Version: 2.0

Shared FastAPI dependencies and response helpers for the proxy routers.
"""
from typing import Any, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

from services.upstream import UpstreamClient


def get_upstream(request: Request) -> UpstreamClient:
    # Created in main.py lifespan
    return request.app.state.upstream


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    content = {"ok": False, "message": message}
    content.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=status_code, content=content)


def misconfigured(var_name: str) -> JSONResponse:
    return error_response(500, f"Server misconfigured: {var_name} missing")


async def read_json_body(request: Request) -> Tuple[Optional[Any], Optional[JSONResponse]]:
    """(body, None) on success, (None, 400 response) when the body is not JSON."""
    try:
        return await request.json(), None
    except ValueError:
        return None, error_response(400, "Invalid JSON")
