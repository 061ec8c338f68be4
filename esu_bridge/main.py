import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI

from esu_bridge.dependencies import get_settings
from esu_bridge.routers import esu, webhook
from esu_bridge.settings import Settings

load_dotenv()  # loads .env from current working directory by default

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(), format=LOG_FORMAT)


def create_app(settings: Settings | None = None) -> FastAPI:
    configure_logging()

    settings = settings or get_settings()
    settings.check_state_secret()

    app = FastAPI(title="WhatsApp Embedded Signup bridge")
    app.dependency_overrides[get_settings] = lambda: settings

    # ---------------- Routers ----------------
    app.include_router(esu.router)
    app.include_router(esu.page_router)
    app.include_router(webhook.router)

    @app.get("/healthz", include_in_schema=False)
    def healthz():
        return {"ok": True}

    return app


app = create_app()
