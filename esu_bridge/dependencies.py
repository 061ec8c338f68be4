from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from esu_bridge.connector import EmbeddedSignupConnector
from esu_bridge.settings import Settings


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def get_connector(settings: Settings = Depends(get_settings)) -> EmbeddedSignupConnector:
    return EmbeddedSignupConnector(settings)
