"""Small JSON-over-HTTP helper shared by the cloud adapters."""

from __future__ import annotations

import json
import logging
import ssl
import urllib.error
import urllib.request
from typing import Any, Dict, Mapping, Optional, Type

from ..exceptions import AssistantError, BackendError

logger = logging.getLogger(__name__)


def post_json(
    url: str,
    payload: Mapping[str, Any],
    *,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float = 10.0,
    ssl_context: Optional[ssl.SSLContext] = None,
    error_cls: Type[AssistantError] = BackendError,
    service: str = "Chat",
) -> Dict[str, Any]:
    """
    POST ``payload`` as JSON and return the decoded JSON object.

    Every transport, HTTP status, content-type or decoding problem is raised as
    ``error_cls`` so callers only deal with the assistant's error taxonomy.
    """
    request_headers: Dict[str, str] = {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    request_headers.update(headers or {})
    request = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers=request_headers,
        method="POST",
    )

    logger.debug("POST %s", _redact(url))
    try:
        with urllib.request.urlopen(request, timeout=timeout, context=ssl_context) as response:  # type: ignore[arg-type]
            body = response.read()
            content_type = response.headers.get("Content-Type", "")
    except urllib.error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore")
        raise error_cls(f"{service} request failed ({exc.code}): {detail}") from exc
    except urllib.error.URLError as exc:
        raise error_cls(f"{service} request could not reach the server: {exc.reason}") from exc
    except (OSError, ValueError) as exc:
        raise error_cls(f"{service} request failed: {exc}") from exc

    logger.debug("Received %d bytes from %s", len(body), _redact(url))
    if "application/json" not in content_type:
        raise error_cls(f"Unexpected content type: {content_type}")

    try:
        decoded = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise error_cls(f"{service} response was not valid JSON") from exc

    if not isinstance(decoded, dict):
        raise error_cls(f"{service} response was not a JSON object")
    return decoded


def _redact(url: str) -> str:
    """Drop the query string, which may carry an API key."""
    return url.split("?", 1)[0]
