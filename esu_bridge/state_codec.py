# esu_bridge/state_codec.py
"""
Signed OAuth `state` for the embedded signup round trip.

The state carries the tenant and the origin the result must be posted back
to. Meta echoes it verbatim, so it is signed with HMAC-SHA256 and verified on
the way back:

    state = base64url(json({"raw": json(token), "sig": hex(hmac(secret, raw))}))

Unsigned legacy states (plain JSON objects such as {"origin": "..."}) are
still accepted so old links keep working. A legacy token is NOT authenticated:
anyone can mint one, so `StateToken.signed` is False and callers must never
use it to authorize anything beyond choosing where a result is posted.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TENANT = "default"
LEGACY_NONCE = "legacy"


class BadState(Exception):
    pass


class SignatureMismatch(BadState):
    pass


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def b64url_decode(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("ascii"))


@dataclass(frozen=True)
class StateToken:
    tenant_id: str = DEFAULT_TENANT
    return_origin: Optional[str] = None
    ts: int = field(default_factory=_now_ms)
    nonce: str = field(default_factory=lambda: str(uuid.uuid4()))
    signed: bool = field(default=True, compare=False)

    @classmethod
    def new(cls, tenant_id: Optional[str] = None, return_origin: Optional[str] = None) -> "StateToken":
        return cls(tenant_id=tenant_id or DEFAULT_TENANT, return_origin=return_origin or "")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"tenantId": self.tenant_id}
        if self.return_origin is not None:
            data["returnOrigin"] = self.return_origin
        data["ts"] = self.ts
        data["nonce"] = self.nonce
        return data

    @classmethod
    def from_signed_dict(cls, data: Any) -> "StateToken":
        if not isinstance(data, dict):
            raise BadState("signed state payload is not an object")
        tenant_id = data.get("tenantId")
        return_origin = data.get("returnOrigin")
        ts = data.get("ts")
        nonce = data.get("nonce")
        if not isinstance(tenant_id, str):
            raise BadState("signed state has no tenantId")
        if return_origin is not None and not isinstance(return_origin, str):
            raise BadState("signed state returnOrigin is not a string")
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            raise BadState("signed state has no numeric ts")
        if not isinstance(nonce, str):
            raise BadState("signed state has no nonce")
        return cls(tenant_id=tenant_id, return_origin=return_origin, ts=ts, nonce=nonce, signed=True)

    @classmethod
    def from_legacy_dict(cls, data: Dict[str, Any]) -> "StateToken":
        def text(*keys: str) -> Optional[str]:
            for key in keys:
                value = data.get(key)
                if isinstance(value, str) and value:
                    return value
            return None

        ts = data.get("ts")
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            ts = _now_ms()
        return cls(
            tenant_id=text("tenantId", "tenant_id") or DEFAULT_TENANT,
            return_origin=text("returnOrigin", "origin"),
            ts=ts,
            nonce=text("nonce") or LEGACY_NONCE,
            signed=False,
        )


class StateCodec:
    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("state secret must not be empty")
        self._key = secret.encode("utf-8")

    def _hmac(self, raw: str) -> str:
        return hmac.new(self._key, raw.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(self, token: StateToken) -> str:
        raw = _dumps(token.to_dict())
        envelope = {"raw": raw, "sig": self._hmac(raw)}
        return b64url_encode(_dumps(envelope).encode("utf-8"))

    def verify(self, opaque: str) -> StateToken:
        try:
            return self._verify(opaque)
        except SignatureMismatch:
            logger.error("state signature mismatch")
            raise
        except BadState as e:
            logger.error("state verification failed, state=%r err=%s", opaque, e)
            raise
        except (ValueError, TypeError, binascii.Error, UnicodeError) as e:
            logger.error("state verification failed, state=%r err=%s", opaque, e)
            raise BadState(str(e)) from e

    def _verify(self, opaque: str) -> StateToken:
        if not opaque:
            raise BadState("empty state")
        decoded = b64url_decode(opaque).decode("utf-8")
        parsed = json.loads(decoded)
        if not isinstance(parsed, dict):
            raise BadState("state is not a JSON object")

        raw = parsed.get("raw")
        sig = parsed.get("sig")
        if isinstance(raw, str) and isinstance(sig, str):
            if not hmac.compare_digest(sig.encode("utf-8"), self._hmac(raw).encode("utf-8")):
                raise SignatureMismatch("sig_mismatch")
            return StateToken.from_signed_dict(json.loads(raw))

        logger.warning("accepting unsigned legacy state; not authenticated")
        return StateToken.from_legacy_dict(parsed)
