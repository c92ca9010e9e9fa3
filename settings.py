from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in TRUTHY


def _number(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    secret_key: str = "replace-this-with-a-random-value"
    brand_name: str = "Clinic AI Readiness"
    leads_dir: Path = BASE_DIR / "leads"
    require_location: bool = True
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    from_email: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: Optional[str] = None
    enrichment_timeout: float = 8.0
    webhook_url: Optional[str] = None
    webhook_timeout: float = 5.0
    calendly_url: Optional[str] = None

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "Settings":
        defaults = cls()
        return cls(
            secret_key=env.get("SECRET_KEY") or defaults.secret_key,
            brand_name=env.get("BRAND_NAME") or defaults.brand_name,
            leads_dir=Path(env["LEADS_DIR"]) if env.get("LEADS_DIR") else defaults.leads_dir,
            require_location=_flag(env.get("REQUIRE_LOCATION"), defaults.require_location),
            smtp_host=env.get("SMTP_HOST") or None,
            smtp_port=int(_number(env.get("SMTP_PORT"), defaults.smtp_port)),
            smtp_username=env.get("SMTP_USERNAME") or env.get("SMTP_USER") or None,
            smtp_password=env.get("SMTP_PASSWORD") or env.get("SMTP_PASS") or None,
            smtp_use_tls=_flag(env.get("SMTP_USE_TLS"), defaults.smtp_use_tls),
            from_email=env.get("FROM_EMAIL") or None,
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_model=env.get("OPENAI_MODEL") or None,
            enrichment_timeout=_number(env.get("ENRICHMENT_TIMEOUT"), defaults.enrichment_timeout),
            webhook_url=env.get("WEBHOOK_URL") or None,
            webhook_timeout=_number(env.get("WEBHOOK_TIMEOUT"), defaults.webhook_timeout),
            calendly_url=env.get("CALENDLY_URL") or env.get("CALENDLY_EMBED_URL") or None,
        )


def load_settings(dotenv_path: Optional[Path] = None) -> Settings:
    load_dotenv(dotenv_path or BASE_DIR / ".env")
    return Settings.from_env(os.environ)
