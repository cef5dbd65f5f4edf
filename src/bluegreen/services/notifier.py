"""Release status notifications."""

from typing import Any, Dict, Optional

import requests


class Notifier:
    """Posts release events to a Slack-compatible incoming webhook.

    Without a webhook URL every call is a no-op. Delivery failures are logged and
    never affect the release.
    """

    ICONS = {
        "deployment_started": ":rocket:",
        "deployment_succeeded": ":white_check_mark:",
        "deployment_failed": ":x:",
        "deployment_rolled_back": ":leftwards_arrow_with_hook:",
        "deployment_cancelled": ":octagonal_sign:",
        "manual_intervention_required": ":rotating_light:",
    }

    def __init__(self, logger, webhook_url: Optional[str] = None, requests_module=requests, timeout: float = 10.0):
        self.logger = logger
        self.webhook_url = webhook_url
        self.requests = requests_module
        self.timeout = timeout

    def notify(self, event: str, detail: Dict[str, Any]):
        if not self.webhook_url:
            return

        icon = self.ICONS.get(event, ":information_source:")
        lines = [f"{icon} *{event.replace('_', ' ')}*"]
        lines += [f"{key}: {value}" for key, value in detail.items() if value is not None]
        payload = {"text": "\n".join(lines), "event": event, "detail": detail}

        try:
            response = self.requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except self.requests.RequestException as exc:
            self.logger.warning("Could not deliver %s notification: %s", event, exc)
