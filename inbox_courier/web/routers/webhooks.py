"""
Webhook Router

Inbound Microsoft Graph mail notifications and Telegram bot updates.
Both endpoints acknowledge right away; the work runs after the response
has been sent.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ...bot.updates import verify_secret
from ...services import Services
from ..dependencies import get_services


logger = logging.getLogger(__name__)

router = APIRouter()


async def run_detached(label: str, func: Callable[..., Awaitable[Any]], *args):
    """Run a background job, logging (not raising) anything it throws."""
    try:
        result = await func(*args)
        logger.debug(f"{label} finished: {result}")
    except Exception as e:
        logger.error(f"{label} failed: {e}", exc_info=True)


async def _read_json(request: Request) -> Optional[Any]:
    try:
        return await request.json()
    except ValueError:
        return None


@router.post("/mail")
async def mail_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    """
    Graph change notifications for the inbox.

    A validationToken query parameter is the subscription handshake and is
    echoed back as plain text.
    """
    validation_token = request.query_params.get("validationToken")
    if validation_token is not None:
        logger.info("Answering Graph subscription validation request")
        return PlainTextResponse(validation_token, status_code=200)

    payload = await _read_json(request)
    if not isinstance(payload, dict):
        logger.warning("Mail webhook body is not a JSON object")
        return JSONResponse({"error": "invalid payload"}, status_code=400)

    background_tasks.add_task(
        run_detached, "Mail notification batch", services.mail_handler.handle_notification, payload
    )
    return JSONResponse({"status": "accepted"}, status_code=202)


@router.post("/telegram")
async def telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    secret_token: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    """Telegram bot updates (messages and button presses)."""
    if not verify_secret(secret_token, services.config.telegram.webhook_secret):
        logger.warning("Rejected Telegram update with a missing or wrong secret token")
        return JSONResponse({"ok": False}, status_code=403)

    update = await _read_json(request)
    if not isinstance(update, dict):
        logger.warning("Telegram webhook body is not a JSON object")
        return JSONResponse({"ok": True})

    background_tasks.add_task(
        run_detached, "Telegram update", services.update_handler.handle_update, update
    )
    return JSONResponse({"ok": True})
