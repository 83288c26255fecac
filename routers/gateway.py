"""
Gateway Router
Version: 2.0

POST /api/n8n: relays action payloads to the n8n webhook.
The upstream status and body are returned verbatim, except when the body
echoes a request_id different from the one that was sent.
"""
import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from config import get_settings
from routers.deps import error_response, get_upstream, read_json_body
from services.errors import NetworkError
from services.logging_config import LogTimer, set_request_id
from services.metrics import IDEMPOTENCY_MISMATCHES
from services.upstream import UpstreamClient

router = APIRouter()
logger = structlog.get_logger("gateway")
settings = get_settings()


@router.post("/n8n")
async def forward_to_webhook(request: Request, upstream: UpstreamClient = Depends(get_upstream)):
    body, invalid = await read_json_body(request)
    if invalid:
        return invalid
    if not isinstance(body, dict):
        return error_response(400, "Request body must be a JSON object")

    request_id = str(body.get("request_id") or "")
    if request_id:
        set_request_id(request_id)

    if not settings.N8N_WEBHOOK_URL:
        logger.error("No N8N_WEBHOOK_URL configured")
        return error_response(500, "Server configuration error: No webhook URL set")

    headers = {"x-request-id": request_id}
    if settings.APP_KEY:
        headers["x-app-key"] = settings.APP_KEY

    action = body.get("action")
    try:
        with LogTimer(logger, "Webhook forward", action=action):
            result = await upstream.request(
                "n8n", "POST", settings.N8N_WEBHOOK_URL,
                body=body, headers=headers, timeout=settings.WEBHOOK_TIMEOUT
            )
    except NetworkError as e:
        return error_response(500, e.message or "Failed to reach webhook", request_id=request_id)

    if result.is_json:
        data = result.data if not result.json_error else {"message": "Invalid response format from webhook"}
    else:
        data = {"message": result.text}

    echoed = data.get("request_id") if isinstance(data, dict) else None
    if echoed and echoed != request_id:
        IDEMPOTENCY_MISMATCHES.inc()
        logger.error("Idempotency key mismatch", sent=request_id, received=echoed, action=action)
        return error_response(500, "Idempotency key mismatch", request_id=request_id)

    logger.info("Webhook answered", action=action, status_code=result.status_code)
    return JSONResponse(status_code=result.status_code, content=data)
