from __future__ import annotations

import json
import logging
from typing import Mapping, Optional, Protocol

import requests

from catalog import RawAnswer

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 8.0

PROMPT_INTRO = (
    "You are an expert consultant for small clinics implementing AI-based patient "
    "booking and engagement."
)


class Enricher(Protocol):
    def suggest(self, answers: Mapping[str, RawAnswer], timeout: float) -> Optional[str]:
        ...


class DisabledEnricher:
    def suggest(self, answers: Mapping[str, RawAnswer], timeout: float) -> Optional[str]:
        return None


class OpenAIEnricher:
    """Asks a chat-completions endpoint for a few extra recommendations.

    Any transport or payload problem is logged and reported as ``None``; the
    caller treats that as "no extra insight".
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        url: str = OPENAI_CHAT_URL,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.url = url
        self.session = session or requests.Session()

    def build_prompt(self, answers: Mapping[str, RawAnswer]) -> str:
        return "\n\n".join(
            [
                PROMPT_INTRO,
                f"Given these short answers: {json.dumps(dict(answers), sort_keys=True)} "
                "provide 3 concise, prioritized recommendations (one sentence each).",
            ]
        )

    def suggest(self, answers: Mapping[str, RawAnswer], timeout: float) -> Optional[str]:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": self.build_prompt(answers)}],
            "max_tokens": 220,
            "temperature": 0.7,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self.session.post(self.url, json=payload, headers=headers, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except requests.Timeout:
            logger.warning("Enrichment timed out after %.1fs; continuing without it", timeout)
            return None
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Enrichment call failed: %s", exc)
            return None

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.warning("Enrichment response had no message content")
            return None
        text = str(content).strip() if content else ""
        return text or None


def build_enricher(api_key: Optional[str], model: Optional[str] = None) -> Enricher:
    if not api_key:
        return DisabledEnricher()
    return OpenAIEnricher(api_key=api_key, model=model or DEFAULT_MODEL)
