# esu_bridge/console/esu_link_console.py
from __future__ import annotations

import sys
import webbrowser
from urllib.parse import parse_qs, urlparse

from esu_bridge.connector import EmbeddedSignupConnector
from esu_bridge.settings import MissingConfiguration, Settings
from esu_bridge.state_codec import BadState


def parse_callback_input(raw: str) -> dict[str, str]:
    """
    Accepts a full callback URL (code/state/error picked from the query)
    or a bare state value.
    """
    raw = raw.strip()

    if raw.startswith("http://") or raw.startswith("https://"):
        q = parse_qs(urlparse(raw).query)
        return {k: q[k][0] for k in ("code", "state", "error") if q.get(k)}

    return {"state": raw}


def mask_token(token: str) -> str:
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"


def describe_state(connector: EmbeddedSignupConnector, state: str) -> dict[str, str]:
    token = connector.codec.verify(state)
    return {
        "tenant_id": token.tenant_id,
        "return_origin": token.return_origin or "*",
        "ts": str(token.ts),
        "nonce": token.nonce,
        "signed": "yes" if token.signed else "NO (legacy, unauthenticated)",
    }


def run_callback(connector: EmbeddedSignupConnector, params: dict[str, str]) -> dict[str, str]:
    """
    Runs the callback handling exactly as the HTTP endpoint would.
    Returns a flat dict for printing, with the access token masked.
    """
    delivery = connector.handle_callback(params.get("code"), params.get("state"), params.get("error"))
    out = {"target_origin": delivery.target_origin}
    if delivery.result.error is not None:
        out["error"] = delivery.result.error
        return out

    data = delivery.result.data.model_dump()
    data["access_token"] = mask_token(data["access_token"])
    out.update({k: str(v) for k, v in data.items()})
    return out


def main() -> None:
    settings = Settings.from_env()
    connector = EmbeddedSignupConnector(settings)

    tenant = input("Tenant id [default]: ").strip() or None
    origin = input("Return origin (empty = *): ").strip() or None

    try:
        login_url = connector.build_login_url(tenant, origin, variant="link")
    except MissingConfiguration as e:
        print(f"\n❌ {e}")
        sys.exit(1)

    print("\nOpen this URL to login and approve:")
    print(login_url)
    print("\nAfter login, paste the FULL redirect URL (runs the callback) OR just a state (decodes it).")

    try:
        webbrowser.open(login_url, new=2)
    except webbrowser.Error:
        pass

    parsed = parse_callback_input(input("\nPaste redirect URL or state: "))

    if "code" not in parsed and "error" not in parsed:
        try:
            result = describe_state(connector, parsed.get("state", ""))
        except BadState as e:
            print(f"\n❌ bad_state: {e}")
            sys.exit(1)
        print("\n✅ State verified")
    else:
        result = run_callback(connector, parsed)
        print("\n❌ Signup failed" if "error" in result else "\n✅ Connected")

    for k, v in result.items():
        print(f"{k}: {v}")


if __name__ == "__main__":
    main()
