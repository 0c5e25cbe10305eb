from __future__ import annotations

import http.client
import json
import socket
import urllib.error
import urllib.request
from typing import Any


class HttpJsonError(RuntimeError):
    """The remote API answered with a non-2xx status or an unreadable body."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"HTTP {status}: {body[:500]}")
        self.status = status
        self.body = body


class HttpTransportError(RuntimeError):
    """The request never got a complete answer (DNS, refused, reset, hang-up, timeout)."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


def post_json(
    url: str,
    body: dict[str, Any],
    *,
    headers: dict[str, str],
    timeout_s: float,
) -> dict[str, Any]:
    req = urllib.request.Request(url, method="POST")
    req.add_header("Content-Type", "application/json")
    req.add_header("Accept", "application/json")
    for name, value in headers.items():
        req.add_header(name, value)

    try:
        with urllib.request.urlopen(
            req, data=json.dumps(body).encode("utf-8"), timeout=timeout_s
        ) as resp:
            status = resp.status
            raw_bytes = resp.read()
    except urllib.error.HTTPError as e:
        text = e.read().decode("utf-8", errors="replace")
        raise HttpJsonError(e.code, text) from e
    except (socket.timeout, TimeoutError) as e:
        raise HttpTransportError(f"Timed out after {timeout_s}s: {url}", timed_out=True) from e
    except urllib.error.URLError as e:
        timed_out = isinstance(e.reason, (socket.timeout, TimeoutError))
        raise HttpTransportError(f"Request to {url} failed: {e.reason}", timed_out=timed_out) from e
    except (http.client.HTTPException, OSError) as e:
        # urlopen only wraps connect-time errors; these surface while reading the response.
        raise HttpTransportError(f"Request to {url} failed: {e!r}") from e

    try:
        raw = raw_bytes.decode("utf-8")
    except UnicodeDecodeError as e:
        raise HttpJsonError(status, "Response body is not valid UTF-8") from e

    try:
        payload = json.loads(raw) if raw else {}
    except json.JSONDecodeError as e:
        raise HttpJsonError(status, f"Invalid JSON response: {raw[:200]}") from e

    if not isinstance(payload, dict):
        raise HttpJsonError(status, f"Unexpected response shape: {payload!r}")
    return payload
