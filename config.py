from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

BACKENDS = ("memory", "sqlite", "http")


class ConfigurationError(RuntimeError):
    """Missing or malformed configuration. Fatal at startup."""


@dataclass(frozen=True)
class Settings:
    ledger_backend: str = "memory"
    db_path: str = "ledger.db"
    ledger_api_url: Optional[str] = None
    ledger_api_token: Optional[str] = None
    ledger_api_timeout: float = 10.0
    fx_rate: float = 0.68
    elicitation_timeout: float = 300.0
    require_positive_rate: bool = False
    log_level: str = "INFO"
    telegram_token: Optional[str] = None
    discord_token: Optional[str] = None


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}.") from None


def _flag(env: Mapping[str, str], key: str) -> bool:
    return env.get(key, "").strip().lower() in ("1", "true", "yes", "on")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build `Settings` from the environment, reading a `.env` file first
    when no explicit mapping is given.
    """

    if env is None:
        load_dotenv()
        env = os.environ

    backend = env.get("LEDGER_BACKEND", "memory").strip().lower()
    if backend not in BACKENDS:
        raise ConfigurationError(
            f"LEDGER_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}."
        )

    api_url = env.get("LEDGER_API_URL") or None
    if backend == "http" and not api_url:
        raise ConfigurationError("LEDGER_API_URL environment variable is not set.")

    timeout = _float(env, "ELICITATION_TIMEOUT_SECONDS", 300.0)
    if timeout <= 0:
        raise ConfigurationError("ELICITATION_TIMEOUT_SECONDS must be greater than zero.")

    return Settings(
        ledger_backend=backend,
        db_path=env.get("DB_PATH", "ledger.db"),
        ledger_api_url=api_url,
        ledger_api_token=env.get("LEDGER_API_TOKEN") or None,
        ledger_api_timeout=_float(env, "LEDGER_API_TIMEOUT", 10.0),
        fx_rate=_float(env, "FX_RATE", 0.68),
        elicitation_timeout=timeout,
        require_positive_rate=_flag(env, "REQUIRE_POSITIVE_RATE"),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        telegram_token=env.get("TELEGRAM_TOKEN") or None,
        discord_token=env.get("DISCORD_TOKEN") or None,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
