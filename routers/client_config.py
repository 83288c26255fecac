"""
Client Config Router
Version: 2.0

GET /api/config: script URLs the client needs, straight from the environment.
"""
import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from config import get_settings
from schemas import ClientConfigResponse, MisconfiguredResponse

router = APIRouter()
logger = structlog.get_logger("client_config")
settings = get_settings()


@router.get("/config")
async def client_config():
    urls = settings.client_script_urls
    missing = [key for key, value in urls.items() if not value]

    if missing:
        logger.warning("Missing environment variables", missing=missing)
        body = MisconfiguredResponse(
            message=f"Server misconfigured: Missing {', '.join(missing)}",
            missing=missing,
        )
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))

    return ClientConfigResponse(**urls).model_dump()
