"""Test configuration and fixtures."""

import json
import re

import pytest
import requests
from fastapi.testclient import TestClient

from esu_bridge.connector import EmbeddedSignupConnector
from esu_bridge.dependencies import get_connector
from esu_bridge.graph import OAuth
from esu_bridge.main import create_app
from esu_bridge.settings import Settings
from esu_bridge.state_codec import StateCodec

TEST_SECRET = "test-state-secret"

_POST_MESSAGE = re.compile(r"postMessage\((.*), (\"[^\"]*\")\);")


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        self._json = json_data
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ""
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._json is None:
            return json.loads(self.text)
        return self._json


class FakeSession:
    """
    Stands in for requests.Session. Routes are matched on the URL suffix,
    e.g. "oauth/access_token", "me/businesses", "W1/phone_numbers".
    A route value may be a FakeResponse or an exception to raise.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        for suffix, outcome in self.routes.items():
            if url.endswith(suffix):
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        raise requests.ConnectionError(f"no route for {url}")

    def urls(self):
        return [c["url"] for c in self.calls]


def extract_message(html):
    """Return (payload, origin) posted by an opener relay page."""
    match = _POST_MESSAGE.search(html)
    assert match, html
    return json.loads(match.group(1)), json.loads(match.group(2))


def graph_routes(
    access_token="T",
    businesses=None,
    numbers=None,
    waba_id="W1",
):
    if businesses is None:
        businesses = [
            {
                "id": "B1",
                "name": "Biz",
                "owned_whatsapp_business_accounts": {"data": [{"id": waba_id, "name": "Waba"}]},
            }
        ]
    if numbers is None:
        numbers = [{"id": "P1", "display_phone_number": "+100", "quality_rating": "GREEN"}]
    return {
        "oauth/access_token": FakeResponse(json_data={"access_token": access_token}),
        "me/businesses": FakeResponse(json_data={"data": businesses}),
        f"{waba_id}/phone_numbers": FakeResponse(json_data={"data": numbers}),
    }


@pytest.fixture
def settings():
    return Settings.from_env(
        {
            "FB_APP_ID": "APP1",
            "FB_APP_SECRET": "APPSECRET",
            "FB_LOGIN_BUSINESS_CONFIG_ID": "CFG1",
            "ESU_REDIRECT_URI": "https://connect.example/api/whatsapp/esu/callback",
            "ESU_STATE_SECRET": TEST_SECRET,
            "WA_VERIFY_TOKEN": "verify-me",
        }
    )


@pytest.fixture
def codec():
    return StateCodec(TEST_SECRET)


@pytest.fixture
def fake_session():
    return FakeSession(graph_routes())


@pytest.fixture
def oauth(settings, fake_session):
    return OAuth(
        app_id=settings.app_id,
        app_secret=settings.app_secret,
        redirect_uri=settings.redirect_uri,
        graph_version=settings.graph_version,
        session=fake_session,
        timeout_s=settings.http_timeout_s,
    )


@pytest.fixture
def connector(settings, oauth, codec):
    return EmbeddedSignupConnector(settings, oauth=oauth, codec=codec)


@pytest.fixture
def client(settings, connector):
    app = create_app(settings)
    app.dependency_overrides[get_connector] = lambda: connector
    with TestClient(app) as test_client:
        yield test_client
