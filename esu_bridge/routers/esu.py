# esu_bridge/routers/esu.py
from __future__ import annotations

import html
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from esu_bridge.connector import EmbeddedSignupConnector
from esu_bridge.dependencies import get_connector, get_settings
from esu_bridge.relay import opener_response
from esu_bridge.settings import MissingConfiguration, Settings

router = APIRouter(prefix="/api/whatsapp/esu", tags=["whatsapp-esu"])
page_router = APIRouter(tags=["whatsapp-esu"])


@router.get("/start")
def start_signup(
    tenant: Optional[str] = None,
    origin: Optional[str] = None,
    connector: EmbeddedSignupConnector = Depends(get_connector),
):
    """Redirects straight to the Meta business login dialog (use /link to get the URL instead)."""
    try:
        url = connector.build_login_url(tenant, origin, variant="redirect")
    except MissingConfiguration:
        return JSONResponse({"error": "env missing"}, status_code=500)
    return RedirectResponse(url=url, status_code=302)


@router.get("/link")
def signup_link(
    tenant: Optional[str] = None,
    origin: Optional[str] = None,
    connector: EmbeddedSignupConnector = Depends(get_connector),
):
    try:
        url = connector.build_login_url(tenant, origin, variant="link")
    except MissingConfiguration as e:
        return JSONResponse({"error": str(e)}, status_code=500)
    return {"url": url}


@router.get("/callback", response_class=HTMLResponse)
def signup_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    connector: EmbeddedSignupConnector = Depends(get_connector),
    settings: Settings = Depends(get_settings),
):
    """
    Meta redirects here. Always answers 200 with the opener relay page;
    failures travel inside the posted message, never as an HTTP status.
    """
    delivery = connector.handle_callback(code, state, error)
    return opener_response(
        delivery.target_origin,
        delivery.result.to_message(),
        settings.allowed_origins,
    )


SETUP_INCOMPLETE_HTML = """<!doctype html><html><body>
<div style="display:grid;place-items:center;height:100vh;font-family:system-ui">
  <div>
    <h1>Setup incomplete</h1>
    <p>{message} on the ESU server.</p>
  </div>
</div>
</body></html>"""


@page_router.get("/esu/start")
def start_signup_page(
    origin: Optional[str] = None,
    tenant: Optional[str] = None,
    connector: EmbeddedSignupConnector = Depends(get_connector),
):
    """Browser entry point: redirects to business login, or shows a setup page."""
    try:
        url = connector.build_login_url(tenant, origin, variant="page")
    except MissingConfiguration as e:
        return HTMLResponse(SETUP_INCOMPLETE_HTML.format(message=html.escape(str(e))), status_code=500)
    return RedirectResponse(url=url)
