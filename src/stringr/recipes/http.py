# recipes/http.py
from __future__ import annotations

import socket
import urllib.error
import urllib.request
from pathlib import Path
from typing import Dict, Mapping, Optional

from ..actions import StepLog
from ..errors import RecipeError
from .base import is_true, require, split_list


DEFAULT_TIMEOUT = 30.0


def parse_headers(value: Optional[str]) -> Dict[str, str]:
    """'Content-Type: application/json, X-Token: abc' -> dict"""
    headers: Dict[str, str] = {}
    for item in split_list(value):
        name, sep, val = item.partition(":")
        if not sep or not name.strip():
            raise RecipeError("HttpRequestFailed", f"malformed header '{item}'", header=item)
        headers[name.strip()] = val.strip()
    return headers


def _timeout(params: Mapping[str, str]) -> float:
    raw = params.get("timeout")
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        raise RecipeError("HttpRequestFailed", f"invalid timeout '{raw}'", timeout=raw)
    if value <= 0:
        raise RecipeError("HttpRequestFailed", f"invalid timeout '{raw}'", timeout=raw)
    return value


def _body(params: Mapping[str, str]) -> Optional[bytes]:
    if params.get("body") is not None:
        return params["body"].encode("utf-8")
    if params.get("body_file"):
        try:
            return Path(params["body_file"]).read_bytes()
        except OSError as e:
            raise RecipeError(
                "HttpRequestFailed",
                f"could not read body_file {params['body_file']}: {e}",
            ) from e
    return None


def _log_body(payload: bytes, log: StepLog) -> None:
    text = payload.decode("utf-8", errors="replace")
    if text:
        log.write(text if text.endswith("\n") else text + "\n")


class HttpRecipe:
    """
    Make an HTTP request (webhooks, API calls, health checks).

    Supported parameters:
      url (required), method (default GET), headers (comma separated
      "Name: value"), body or body_file, output (file to save the response
      body to), fail_on_error (default true: status >= 400 fails the step),
      timeout in seconds (default 30)
    """
    name = "http"

    def run(self, params: Mapping[str, str], log: StepLog) -> None:
        url = require(params, "url", "MissingHttpUrl")
        method = (params.get("method") or "GET").upper()
        headers = parse_headers(params.get("headers"))
        fail_on_error = is_true(params.get("fail_on_error"), default=True)
        timeout = _timeout(params)
        data = _body(params)
        output = params.get("output")

        log.line(f"HTTP {method} {url}")

        req = urllib.request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=timeout) as response:
                status, reason = response.status, response.reason
                payload = response.read()
        except urllib.error.HTTPError as e:
            status, reason = e.code, e.reason
            payload = e.read() if e.fp else b""
        except urllib.error.URLError as e:
            log.line(f"HTTP request failed: {e.reason}")
            raise RecipeError("HttpRequestFailed", f"network error: {e.reason}", url=url) from e
        except (socket.timeout, TimeoutError) as e:
            log.line(f"HTTP request timed out after {timeout:g}s")
            raise RecipeError("HttpRequestFailed", "request timed out", url=url) from e

        log.line(f"HTTP {status} {reason}")

        # an error body never reaches `output`
        if status >= 400 and fail_on_error:
            _log_body(payload, log)
            log.line(f"HTTP request failed with status {status}")
            raise RecipeError("HttpRequestFailed", f"{method} {url} returned {status}", status=status)

        if output:
            out = Path(output)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(payload)
            log.line(f"Saving response to: {output}")
        else:
            _log_body(payload, log)

        log.line("HTTP request completed successfully")
