"""Test the embedded signup HTTP endpoints."""

from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from esu_bridge.connector import EmbeddedSignupConnector
from esu_bridge.dependencies import get_connector
from esu_bridge.main import create_app
from esu_bridge.settings import Settings
from esu_bridge.state_codec import StateToken, b64url_encode

from conftest import TEST_SECRET, extract_message, graph_routes


def _state_from(url, codec):
    return codec.verify(parse_qs(urlparse(url).query)["state"][0])


@pytest.fixture
def unconfigured_client(codec):
    settings = Settings.from_env({"ESU_STATE_SECRET": TEST_SECRET})
    app = create_app(settings)
    app.dependency_overrides[get_connector] = lambda: EmbeddedSignupConnector(settings, codec=codec)
    with TestClient(app) as test_client:
        yield test_client


class TestStart:
    def test_redirects_to_dialog(self, client, codec):
        resp = client.get(
            "/api/whatsapp/esu/start",
            params={"tenant": "acme", "origin": "https://tenant.example"},
            follow_redirects=False,
        )
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("https://www.facebook.com/v20.0/dialog/oauth?client_id=APP1")
        token = _state_from(location, codec)
        assert (token.tenant_id, token.return_origin) == ("acme", "https://tenant.example")

    def test_defaults(self, client, codec):
        resp = client.get("/api/whatsapp/esu/start", follow_redirects=False)
        token = _state_from(resp.headers["location"], codec)
        assert (token.tenant_id, token.return_origin) == ("default", "")

    def test_missing_configuration(self, unconfigured_client):
        resp = unconfigured_client.get("/api/whatsapp/esu/start", follow_redirects=False)
        assert resp.status_code == 500
        assert resp.json() == {"error": "env missing"}


class TestLink:
    def test_returns_url(self, client, codec):
        resp = client.get("/api/whatsapp/esu/link", params={"tenant": "acme", "origin": "https://tenant.example"})
        assert resp.status_code == 200
        url = resp.json()["url"]
        q = parse_qs(urlparse(url).query)
        assert q["response_type"] == ["code"]
        assert q["scope"] == ["business_management,whatsapp_business_management,whatsapp_business_messaging"]
        assert _state_from(url, codec).tenant_id == "acme"

    def test_missing_configuration(self, unconfigured_client):
        resp = unconfigured_client.get("/api/whatsapp/esu/link")
        assert resp.status_code == 500
        assert "FB_APP_ID" in resp.json()["error"]


class TestCallback:
    def test_end_to_end(self, client, codec):
        state = codec.sign(StateToken.new("acme", "https://tenant.example"))
        resp = client.get("/api/whatsapp/esu/callback", params={"code": "abc", "state": state})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        payload, origin = extract_message(resp.text)
        assert origin == "https://tenant.example"
        assert payload["type"] == "wa:connected"
        assert payload["data"]["waba_id"] == "W1"
        assert payload["data"]["phone_number_id"] == "P1"
        assert payload["data"]["access_token"] == "T"

    def test_bad_state_is_broadcast(self, client):
        resp = client.get("/api/whatsapp/esu/callback", params={"code": "abc", "state": "!!!"})
        assert resp.status_code == 200
        assert extract_message(resp.text) == ({"type": "wa:connected", "error": "bad_state"}, "*")

    def test_missing_params(self, client):
        resp = client.get("/api/whatsapp/esu/callback")
        assert resp.status_code == 200
        payload, origin = extract_message(resp.text)
        assert payload["error"] == "missing_code_or_state"
        assert origin == "*"

    def test_provider_error(self, client):
        resp = client.get(
            "/api/whatsapp/esu/callback",
            params={"error": "access_denied", "error_description": "Permissions error"},
        )
        assert extract_message(resp.text) == ({"type": "wa:connected", "error": "access_denied"}, "*")

    def test_provider_error_cannot_inject_script(self, client):
        resp = client.get("/api/whatsapp/esu/callback", params={"error": "</script><script>alert(1)//"})
        assert "<script>alert(1)" not in resp.text
        assert extract_message(resp.text)[0]["error"] == "</script><script>alert(1)//"

    def test_allow_list_downgrades_origin(self, settings, oauth, codec):
        settings = settings.model_copy(update={"allowed_origins": ["https://a.test"]})
        app = create_app(settings)
        app.dependency_overrides[get_connector] = lambda: EmbeddedSignupConnector(settings, oauth=oauth, codec=codec)
        state = codec.sign(StateToken.new("acme", "https://evil.test"))

        with TestClient(app) as c:
            resp = c.get("/api/whatsapp/esu/callback", params={"code": "abc", "state": state})

        payload, origin = extract_message(resp.text)
        assert origin == "*"
        assert payload["data"]["tenant_id"] == "acme"

    def test_missing_waba(self, client, codec, fake_session):
        fake_session.routes.update(graph_routes(businesses=[{"id": "B1"}]))
        state = codec.sign(StateToken.new("acme", "https://tenant.example"))
        resp = client.get("/api/whatsapp/esu/callback", params={"code": "abc", "state": state})
        assert extract_message(resp.text) == (
            {"type": "wa:connected", "error": "no_waba_found_for_user"},
            "https://tenant.example",
        )

    def test_legacy_state(self, client):
        state = b64url_encode(b'{"origin": "https://x.test"}')
        resp = client.get("/api/whatsapp/esu/callback", params={"code": "abc", "state": state})
        payload, origin = extract_message(resp.text)
        assert origin == "https://x.test"
        assert payload["data"]["tenant_id"] == "default"


class TestStartPage:
    def test_redirects_with_signed_state(self, client, codec):
        resp = client.get(
            "/esu/start", params={"origin": "https://tenant.example"}, follow_redirects=False
        )
        assert resp.status_code == 307
        location = resp.headers["location"]
        q = parse_qs(urlparse(location).query)
        assert q["business_login"] == ["1"]
        assert q["response_type"] == ["code"]
        assert q["scope"] == ["public_profile,business_management,whatsapp_business_messaging"]
        token = _state_from(location, codec)
        assert token.signed
        assert token.return_origin == "https://tenant.example"

    def test_setup_incomplete(self, unconfigured_client):
        resp = unconfigured_client.get("/esu/start", follow_redirects=False)
        assert resp.status_code == 500
        assert "Setup incomplete" in resp.text
        assert "ESU_REDIRECT_URI" in resp.text


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}
