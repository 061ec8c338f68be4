# esu_bridge/relay.py
from __future__ import annotations

import json
from typing import Any, Sequence

from fastapi.responses import HTMLResponse

WILDCARD_ORIGIN = "*"

# Characters that could close the <script> element or break a JS string literal.
_SCRIPT_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def resolve_target_origin(target_origin: str, allow_list: Sequence[str]) -> str:
    """
    An empty allow list lets any origin supplied at start time through;
    otherwise origins that are not listed are downgraded to "*".
    """
    if not allow_list or target_origin in allow_list:
        return target_origin
    return WILDCARD_ORIGIN


def script_literal(value: Any) -> str:
    """Serialize `value` as a JS literal safe to embed inside <script>."""
    out = json.dumps(value, ensure_ascii=False)
    for ch, escaped in _SCRIPT_ESCAPES.items():
        out = out.replace(ch, escaped)
    return out


def build_opener_html(target_origin: str, payload: Any, allow_list: Sequence[str]) -> str:
    safe_origin = resolve_target_origin(target_origin, allow_list)
    return (
        "<!doctype html><html><body>\n"
        "<script>\n"
        "  try {\n"
        f"    window.opener && window.opener.postMessage({script_literal(payload)}, {script_literal(safe_origin)});\n"
        "  } catch (e) {}\n"
        "  window.close();\n"
        "</script>\n"
        "Done.\n"
        "</body></html>"
    )


def opener_response(target_origin: str, payload: Any, allow_list: Sequence[str]) -> HTMLResponse:
    return HTMLResponse(build_opener_html(target_origin, payload, allow_list), status_code=200)
