from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """Posts lead and quiz-result events to an automation webhook (n8n, Zapier, ...)."""

    def __init__(self, url: Optional[str] = None, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def notify(self, kind: str, payload: Mapping[str, Any]) -> bool:
        if not self.enabled:
            return False
        body = {"type": kind, **payload}
        try:
            response = self.session.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Webhook %s delivery failed: %s", kind, exc)
            return False
        return True
