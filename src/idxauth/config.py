"""Centralised configuration using pydantic-settings.

All environment variables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from urllib.parse import urlsplit

from pydantic import BaseModel, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# src/idxauth/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class IdxConfig(BaseModel):
    """Okta org and OAuth client used for the interaction-code flow."""

    issuer: str = ""
    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    scopes: list[str] = ["openid", "profile", "offline_access"]
    redirect_uri: str = "http://localhost:8080/login/callback"

    @field_validator("issuer")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def issuer_must_be_https(self) -> IdxConfig:
        if not self.issuer:
            return self
        parts = urlsplit(self.issuer)
        if parts.scheme == "https":
            return self
        if parts.scheme == "http" and parts.hostname in _LOCAL_HOSTS:
            return self
        msg = "IDX__ISSUER must be an https URL (http is allowed for localhost only)"
        raise ValueError(msg)


class HttpConfig(BaseModel):
    """Outbound HTTP settings for the IDX transport."""

    timeout_seconds: float = 10.0


class DevConfig(BaseModel):
    """Development and testing toggles."""

    idx_mock: bool = False


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Settings with automatic .env loading and type validation.

    Environment variables use double-underscore delimiter for nesting:
    ``IDX__ISSUER``, ``IDX__CLIENT_ID``, ``HTTP__TIMEOUT_SECONDS``, etc.
    """

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    idx: IdxConfig = IdxConfig()
    http: HttpConfig = HttpConfig()
    dev: DevConfig = DevConfig()


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    settings = Settings()

    env_file = settings.model_config.get("env_file")
    if env_file is not None and Path(str(env_file)).is_file():
        logger.info("Settings loaded .env from: %s", env_file)
    else:
        logger.info("Settings: no .env file found, using env vars and defaults")

    return settings
