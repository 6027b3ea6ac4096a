"""
config.py — Environment-derived settings

Settings are read from the process environment every time `get_settings()` is
called, so credentials rotated in the environment are picked up by the next
request. Unset variables fall back to empty strings or sensible defaults.
"""

import os
from dataclasses import dataclass

DEFAULT_BLACKCAT_API_URL = "https://api.blackcatpagamentos.online/api"
DEFAULT_UTMIFY_API_URL = "https://api.utmify.com.br/api-credentials/orders"
DEFAULT_APP_URL = "https://seu-dominio.com"

WEBHOOK_PATH = "/api/webhook/blackcat"


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    blackcat_api_url: str
    blackcat_public_key: str
    blackcat_secret_key: str

    app_url: str

    utmify_api_url: str
    utmify_api_token: str
    utmify_platform: str

    pix_expires_in_days: int
    http_timeout_seconds: float

    log_level: str
    log_file: str

    @property
    def blackcat_api_key(self) -> str:
        # Secret key first, public key as fallback
        return self.blackcat_secret_key or self.blackcat_public_key

    @property
    def postback_url(self) -> str:
        return f"{self.app_url.rstrip('/')}{WEBHOOK_PATH}"


def get_settings() -> Settings:
    return Settings(
        blackcat_api_url=os.environ.get("BLACKCAT_API_URL") or DEFAULT_BLACKCAT_API_URL,
        blackcat_public_key=os.environ.get("BLACKCAT_PUBLIC_KEY", ""),
        blackcat_secret_key=os.environ.get("BLACKCAT_SECRET_KEY", ""),
        app_url=os.environ.get("APP_URL") or DEFAULT_APP_URL,
        utmify_api_url=os.environ.get("UTMIFY_API_URL") or DEFAULT_UTMIFY_API_URL,
        utmify_api_token=os.environ.get("UTMIFY_API_TOKEN", ""),
        utmify_platform=os.environ.get("UTMIFY_PLATFORM") or "papelaria-site",
        pix_expires_in_days=_int_env("PIX_EXPIRES_IN_DAYS", 1),
        http_timeout_seconds=_float_env("HTTP_TIMEOUT_SECONDS", 10.0),
        log_level=os.environ.get("LOG_LEVEL") or "INFO",
        log_file=os.environ.get("LOG_FILE", "pix_checkout.log"),
    )
