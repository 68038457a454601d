# recipes/slack.py
from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from typing import Any, Dict, Mapping

from ..actions import StepLog
from ..errors import RecipeError
from .base import require


TIMEOUT_SECONDS = 10


def build_payload(params: Mapping[str, str]) -> Dict[str, Any]:
    message = require(params, "message", "MissingSlackMessage")
    payload: Dict[str, Any] = {"text": message}
    for key in ("channel", "username", "icon_emoji"):
        if params.get(key):
            payload[key] = params[key]
    if params.get("color"):
        payload["attachments"] = [{"color": params["color"], "text": message}]
    return payload


class SlackRecipe:
    """
    Post a message to a Slack incoming webhook.

    webhook_url falls back to $SLACK_WEBHOOK_URL. color is "good", "warning",
    "danger" or a hex code and wraps the message in an attachment.
    """
    name = "slack"

    def run(self, params: Mapping[str, str], log: StepLog) -> None:
        webhook_url = params.get("webhook_url") or os.environ.get("SLACK_WEBHOOK_URL")
        if not webhook_url:
            log.line("Error: SLACK_WEBHOOK_URL not set and webhook_url parameter not provided")
            raise RecipeError("MissingSlackWebhookUrl", "no Slack webhook URL configured")

        payload = build_payload(params)

        log.line("Sending Slack notification")
        if params.get("channel"):
            log.line(f"Channel: {params['channel']}")

        req = urllib.request.Request(
            webhook_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=TIMEOUT_SECONDS) as response:
                response.read()
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else ""
            log.line(f"Slack notification failed: {e.code} {e.reason}. {error_body}".rstrip())
            raise RecipeError("SlackNotificationFailed", f"webhook returned {e.code}", status=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            reason = getattr(e, "reason", e)
            log.line(f"Slack notification failed: {reason}")
            raise RecipeError("SlackNotificationFailed", f"network error: {reason}") from e

        log.line("Slack notification sent successfully")
