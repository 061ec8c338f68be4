# esu_bridge/connector.py
# Embedded signup flow:
# - issue a signed state (tenant + return origin) and build the dialog URL
# - on callback: verify state -> code -> user token -> business + WABA -> phone number
# - always finish with exactly one ConnectionResult addressed to an origin

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional, Tuple

from esu_bridge.graph import OAuth, UpstreamCallFailure
from esu_bridge.models.schemas import ConnectionData, ConnectionResult, PhoneNumber
from esu_bridge.relay import WILDCARD_ORIGIN
from esu_bridge.settings import Settings
from esu_bridge.state_codec import BadState, StateCodec, StateToken

logger = logging.getLogger(__name__)

LoginVariant = Literal["redirect", "link", "page"]

LINK_SCOPES = (
    "business_management",
    "whatsapp_business_management",
    "whatsapp_business_messaging",
)
PAGE_SCOPES = (
    "public_profile",
    "business_management",
    "whatsapp_business_messaging",
)

ERR_MISSING_CODE_OR_STATE = "missing_code_or_state"
ERR_BAD_STATE = "bad_state"
ERR_NO_WABA = "no_waba_found_for_user"


class NoAccountFound(Exception):
    pass


@dataclass(frozen=True)
class Delivery:
    target_origin: str
    result: ConnectionResult


class EmbeddedSignupConnector:
    """
    Stateless relay for one browser round trip.

    Flow:
      start:    StateToken -> sign -> dialog URL (state=...)
      callback: error? -> code/state present? -> verify state
                -> code -> user token -> /me/businesses (first with a WABA)
                -> default business/WABA fallback -> /{waba}/phone_numbers (best effort)
                -> Delivery(return origin, ConnectionResult)
    """

    def __init__(
        self,
        settings: Settings,
        oauth: Optional[OAuth] = None,
        codec: Optional[StateCodec] = None,
    ) -> None:
        self.settings = settings
        self.oauth = oauth or OAuth(
            app_id=settings.app_id,
            app_secret=settings.app_secret,
            redirect_uri=settings.redirect_uri,
            graph_version=settings.graph_version,
            timeout_s=settings.http_timeout_s,
        )
        self.codec = codec or StateCodec(settings.state_secret)

    # --------------------------
    # Start
    # --------------------------
    def issue_state(self, tenant: Optional[str], origin: Optional[str]) -> Tuple[StateToken, str]:
        token = StateToken.new(tenant_id=tenant, return_origin=origin)
        return token, self.codec.sign(token)

    def build_login_url(
        self,
        tenant: Optional[str],
        origin: Optional[str],
        variant: LoginVariant = "redirect",
    ) -> str:
        """Raises MissingConfiguration when the app id, config id or redirect URI is absent."""
        _, config_id, _ = self.settings.require_login_config()
        _, state = self.issue_state(tenant, origin)

        if variant == "link":
            return self.oauth.build_business_auth_url(
                state=state, config_id=config_id, response_type="code", scopes=LINK_SCOPES
            )
        if variant == "page":
            return self.oauth.build_business_auth_url(
                state=state,
                config_id=config_id,
                response_type="code",
                business_login=True,
                scopes=PAGE_SCOPES,
            )
        return self.oauth.build_business_auth_url(state=state, config_id=config_id)

    # --------------------------
    # Account discovery
    # --------------------------
    def resolve_business_and_waba(self, access_token: str) -> Tuple[str, str]:
        businesses = self.oauth.get_businesses(access_token)
        business = businesses.first_with_waba()

        business_id = business.id if business else None
        waba_id = business.wabas[0].id if business and business.wabas else None

        # review/test accounts may have no writable business relationship yet
        business_id = business_id or self.settings.default_business_id
        waba_id = waba_id or self.settings.default_waba_id

        if not business_id or not waba_id:
            raise NoAccountFound(ERR_NO_WABA)
        return business_id, waba_id

    def resolve_phone_number(self, waba_id: str, access_token: str) -> Optional[PhoneNumber]:
        try:
            return self.oauth.get_phone_numbers(waba_id, access_token).first()
        except Exception as e:
            logger.warning("Failed to fetch phone numbers for WABA %s: %s", waba_id, e)
            return None

    # --------------------------
    # Callback
    # --------------------------
    def handle_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> Delivery:
        if error:
            return Delivery(WILDCARD_ORIGIN, ConnectionResult.failed(error))

        if not code or not state:
            return Delivery(WILDCARD_ORIGIN, ConnectionResult.failed(ERR_MISSING_CODE_OR_STATE))

        try:
            token = self.codec.verify(state)
        except BadState:
            return Delivery(WILDCARD_ORIGIN, ConnectionResult.failed(ERR_BAD_STATE))

        origin = token.return_origin or WILDCARD_ORIGIN
        try:
            return Delivery(origin, self._connect(code, token))
        except NoAccountFound:
            return Delivery(origin, ConnectionResult.failed(ERR_NO_WABA))
        except UpstreamCallFailure as e:
            logger.error("Embedded signup failed for tenant %s: %s", token.tenant_id, e)
            return Delivery(origin, ConnectionResult.failed(str(e)))
        except Exception as e:
            logger.exception("Embedded signup crashed for tenant %s", token.tenant_id)
            return Delivery(origin, ConnectionResult.failed(str(e) or e.__class__.__name__))

    def _connect(self, code: str, token: StateToken) -> ConnectionResult:
        # 1) code -> user token
        user_token = self.oauth.exchange_code_for_token(code)

        # 2) business + WABA (with configured fallback)
        business_id, waba_id = self.resolve_business_and_waba(user_token.access_token)

        # 3) first phone number, optional
        number = self.resolve_phone_number(waba_id, user_token.access_token)

        return ConnectionResult.connected(
            ConnectionData(
                tenant_id=token.tenant_id,
                business_id=business_id,
                waba_id=waba_id,
                phone_number_id=number.id if number else "",
                display_name=number.display_name if number else "",
                quality=(number.quality_rating or "") if number else "",
                access_token=user_token.access_token,
            )
        )
