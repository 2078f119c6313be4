from __future__ import annotations

import json
from typing import Any, Dict

from httpx import Response

from .errors import MCPError, server_error


def extract_http_error(response: Response, context: Dict[str, Any]) -> MCPError:
    """Build a ``SERVER.API_ERROR`` from a non-2xx hub response.

    Structured bodies (``{"error": {...}}``, ``{"error": "..."}`` or
    ``{"detail": ...}``) provide the message; otherwise the status code does.
    """
    status = response.status_code
    text = (response.text or "").strip()
    details: Dict[str, Any] = {**context, "status": status}

    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            details["code"] = error.get("code")
            if error.get("data") is not None:
                details["data"] = error.get("data")
            message = str(error.get("message") or f"Server error ({status})")
            return server_error("API_ERROR", message, details)

        if isinstance(error, str) and error:
            if data.get("code") is not None:
                details["code"] = data.get("code")
            if data.get("data") is not None:
                details["data"] = data.get("data")
            return server_error("API_ERROR", error, details)

        detail = data.get("detail")
        if isinstance(detail, dict) and detail.get("message"):
            details["code"] = detail.get("code")
            return server_error("API_ERROR", str(detail["message"]), details)
        if isinstance(detail, str) and detail:
            return server_error("API_ERROR", detail, details)

    details["body"] = text
    return server_error("API_ERROR", f"Server error ({status})", details)


def parse_json_body(response: Response, context: Dict[str, Any]) -> Any:
    """Decode a successful response body, raising ``SERVER.API_ERROR`` when it is not JSON."""
    text = response.text
    if not text or not text.strip():
        raise server_error("API_ERROR", "Empty response from server", {**context, "status": response.status_code})
    try:
        return json.loads(text)
    except ValueError:
        raise server_error(
            "API_ERROR",
            "Invalid response: Not JSON",
            {**context, "status": response.status_code, "body": text[:2000]},
        ) from None
