# esu_bridge/graph.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import requests
from pydantic import ValidationError

from esu_bridge.models.schemas import BusinessList, PhoneNumberList

BUSINESS_FIELDS = "id,name,owned_whatsapp_business_accounts{id,name}"
PHONE_NUMBER_FIELDS = "id,display_phone_number,verified_name,quality_rating,status"


class UpstreamCallFailure(Exception):
    pass


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    token_type: Optional[str] = None
    expires_in: Optional[int] = None


class OAuth:
    """
    Meta Graph helper for WhatsApp embedded signup:
      - build the business login dialog URL (config_id based)
      - exchange code -> user access token
      - list businesses with their owned WhatsApp Business Accounts
      - list phone numbers of a WABA

    Any non-2xx response raises UpstreamCallFailure carrying the raw body.
    """

    def __init__(
        self,
        app_id: Optional[str],
        app_secret: Optional[str],
        redirect_uri: Optional[str],
        graph_version: str = "v20.0",
        session: Optional[requests.Session] = None,
        timeout_s: int = 20,
    ) -> None:
        self.app_id = app_id
        self.app_secret = app_secret
        self.redirect_uri = redirect_uri
        self.graph_version = graph_version
        self.http = session or requests.Session()
        self.timeout_s = timeout_s

    @property
    def graph_base(self) -> str:
        return f"https://graph.facebook.com/{self.graph_version}"

    @property
    def dialog_base(self) -> str:
        return f"https://www.facebook.com/{self.graph_version}/dialog/oauth"

    def build_business_auth_url(
        self,
        state: str,
        config_id: str,
        scopes: Optional[Sequence[str]] = None,
        response_type: Optional[str] = None,
        business_login: bool = False,
    ) -> str:
        """
        Facebook Login for Businesses (Configuration-based).
        The state is base64url, so it needs no escaping, but is quoted anyway.
        """
        quote = requests.utils.quote
        url = (
            f"{self.dialog_base}"
            f"?client_id={quote(str(self.app_id), safe='')}"
            f"&redirect_uri={quote(str(self.redirect_uri), safe='')}"
            f"&config_id={quote(str(config_id), safe='')}"
        )
        if response_type:
            url += f"&response_type={quote(response_type, safe='')}"
        if business_login:
            url += "&business_login=1"
        if scopes:
            url += f"&scope={quote(','.join(scopes), safe='')}"
        return url + f"&state={quote(state, safe='')}"

    def exchange_code_for_token(self, code: str) -> TokenResponse:
        params = {
            "client_id": self.app_id,
            "client_secret": self.app_secret,
            "redirect_uri": self.redirect_uri,
            "code": code,
        }
        data = self._get_json(f"{self.graph_base}/oauth/access_token", params)
        token = data.get("access_token")
        if not token:
            raise UpstreamCallFailure(f"Access token missing: {data}")
        return TokenResponse(str(token), data.get("token_type"), data.get("expires_in"))

    def get_businesses(self, access_token: str) -> BusinessList:
        data = self._get_json(
            f"{self.graph_base}/me/businesses",
            {"fields": BUSINESS_FIELDS},
            access_token=access_token,
        )
        return self._parse(BusinessList, data)

    def get_phone_numbers(self, waba_id: str, access_token: str) -> PhoneNumberList:
        data = self._get_json(
            f"{self.graph_base}/{waba_id}/phone_numbers",
            {"fields": PHONE_NUMBER_FIELDS},
            access_token=access_token,
        )
        return self._parse(PhoneNumberList, data)

    def _parse(self, model, data: Dict[str, Any]):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise UpstreamCallFailure(f"Unexpected response from Meta: {e}") from e

    def _get_json(
        self,
        url: str,
        params: Dict[str, Any],
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        try:
            resp = self.http.get(url, params=params, headers=headers, timeout=self.timeout_s)
        except requests.RequestException as e:
            raise UpstreamCallFailure(str(e)) from e

        if not resp.ok:
            raise UpstreamCallFailure(resp.text)

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamCallFailure(resp.text or "Non-JSON response from Meta.") from e

        if not isinstance(data, dict):
            raise UpstreamCallFailure(resp.text)
        return data
