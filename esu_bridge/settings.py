# esu_bridge/settings.py
"""Application settings and environment configuration."""

from __future__ import annotations

import logging
from typing import Annotated, Any, List, Mapping, Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

DEV_STATE_SECRET = "dev-secret"
PRODUCTION_ENVIRONMENTS = {"prod", "production"}

# blank env values fall back to these instead of failing validation
_BLANK_DEFAULTS = {
    "state_secret": DEV_STATE_SECRET,
    "graph_version": "v20.0",
    "http_timeout_s": 20,
    "environment": "dev",
}


class MissingConfiguration(Exception):
    pass


def parse_origin_list(raw: Optional[str]) -> List[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


class Settings(BaseSettings):
    """
    Process-wide configuration for the embedded signup bridge.

    Built once from the environment (and .env) and handed to every
    component; nothing else reads os.environ.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Meta app
    app_id: Optional[str] = Field(default=None, validation_alias="FB_APP_ID")
    app_secret: Optional[str] = Field(default=None, validation_alias="FB_APP_SECRET")
    login_config_id: Optional[str] = Field(default=None, validation_alias="FB_LOGIN_BUSINESS_CONFIG_ID")
    redirect_uri: Optional[str] = Field(default=None, validation_alias="ESU_REDIRECT_URI")

    # State signing; the default is a development fallback only
    state_secret: str = Field(default=DEV_STATE_SECRET, validation_alias="ESU_STATE_SECRET")

    # Fallback for review/test accounts without a discoverable WABA
    default_business_id: Optional[str] = Field(default=None, validation_alias="FB_DEFAULT_BUSINESS_ID")
    default_waba_id: Optional[str] = Field(default=None, validation_alias="FB_DEFAULT_WABA_ID")

    # Comma separated; empty means any origin passed at start time
    allowed_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=list, validation_alias="ALLOWED_TENANT_ORIGINS"
    )
    verify_token: Optional[str] = Field(default=None, validation_alias="WA_VERIFY_TOKEN")

    graph_version: str = Field(default="v20.0", validation_alias="GRAPH_API_VERSION")
    http_timeout_s: int = Field(default=20, validation_alias="GRAPH_HTTP_TIMEOUT_S")
    environment: str = Field(default="dev", validation_alias="ESU_ENV")

    @field_validator(
        "app_id",
        "app_secret",
        "login_config_id",
        "redirect_uri",
        "default_business_id",
        "default_waba_id",
        "verify_token",
        mode="before",
    )
    @classmethod
    def _blank_is_absent(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("state_secret", "graph_version", "http_timeout_s", "environment", mode="before")
    @classmethod
    def _blank_is_default(cls, v: Any, info: ValidationInfo) -> Any:
        if isinstance(v, str):
            return v.strip() or _BLANK_DEFAULTS[info.field_name]
        return v

    @field_validator("environment")
    @classmethod
    def _lower_environment(cls, v: str) -> str:
        return v.lower()

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return parse_origin_list(v)
        return v

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        load_env_file: bool = True,
    ) -> "Settings":
        """
        Reads the process environment (plus .env unless load_env_file is
        False). An explicit `environ` mapping is used instead of both.
        """
        if environ is not None:
            return cls.model_validate(dict(environ))
        if load_env_file:
            return cls()
        return cls(_env_file=None)

    @property
    def uses_dev_secret(self) -> bool:
        return self.state_secret == DEV_STATE_SECRET

    @property
    def is_production(self) -> bool:
        return self.environment in PRODUCTION_ENVIRONMENTS

    def require_login_config(self) -> tuple[str, str, str]:
        """
        Returns (app_id, login_config_id, redirect_uri) or raises
        MissingConfiguration listing every absent variable.
        """
        missing = [
            name
            for name, value in (
                ("FB_APP_ID", self.app_id),
                ("FB_LOGIN_BUSINESS_CONFIG_ID", self.login_config_id),
                ("ESU_REDIRECT_URI", self.redirect_uri),
            )
            if not value
        ]
        if missing:
            raise MissingConfiguration(f"Missing {' / '.join(missing)}")
        return self.app_id, self.login_config_id, self.redirect_uri

    def check_state_secret(self) -> None:
        if not self.uses_dev_secret:
            return
        if self.is_production:
            raise MissingConfiguration(
                "ESU_STATE_SECRET is not set; refusing to sign state with the development secret"
            )
        logger.warning("ESU_STATE_SECRET not set, signing state with the development secret")
