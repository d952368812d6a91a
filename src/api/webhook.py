"""
HTTP endpoints: the chat platform webhook and a health probe.

The webhook acknowledges immediately and processes events in the
background, since the platform expects a fast 200 and retries otherwise.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from loguru import logger
from pydantic import ValidationError

from agent.dispatcher import EventDispatcher
from agent.events import WebhookPayload


router = APIRouter()


def get_dispatcher(request: Request) -> EventDispatcher:
    """
    Dependency returning the dispatcher built at startup.

    Raises:
        HTTPException: 503 if the application has not finished starting
    """
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dispatcher not initialized"
        )
    return dispatcher


@router.post("/webhook/{tenant_id}")
async def receive_webhook(
    tenant_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    dispatcher: EventDispatcher = Depends(get_dispatcher)
):
    """
    Accept one webhook delivery for a tenant.

    Expected payload:
    {
        "destination": "...",
        "events": [
            {"type": "postback", "replyToken": "...", "source": {"userId": "U..."},
             "postback": {"data": "action=select_date&date=2025-03-14"}}
        ]
    }
    """
    try:
        body = await request.json()
    except ValueError:
        logger.warning(f"Rejected webhook for tenant={tenant_id}: body is not JSON")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be JSON"
        )

    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as exc:
        logger.warning(f"Rejected webhook for tenant={tenant_id}: {exc.error_count()} validation errors")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed webhook payload"
        )

    background_tasks.add_task(dispatcher.handle_payload, tenant_id, payload)
    return {"status": "ok"}


@router.get("/health")
async def health_check():
    return {"status": "ok"}
