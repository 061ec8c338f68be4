# esu_bridge/routers/webhook.py
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from esu_bridge.dependencies import get_settings
from esu_bridge.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/whatsapp/webhook", tags=["whatsapp-webhook"])


@router.get("", response_class=PlainTextResponse)
def verify_subscription(request: Request, settings: Settings = Depends(get_settings)):
    # query keys contain dots (hub.verify_token), so read them off the request
    params = request.query_params
    token = params.get("hub.verify_token")

    if settings.verify_token and token == settings.verify_token:
        return PlainTextResponse(params.get("hub.challenge", "OK"), status_code=200)

    logger.warning("WA webhook verification rejected")
    return PlainTextResponse("Forbidden", status_code=403)


@router.post("")
async def receive_event(request: Request):
    try:
        body = await request.json()
    except ValueError:
        body = {}

    logger.info("WA webhook %s", json.dumps(body))
    return {"ok": True}
