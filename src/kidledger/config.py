"""Configuration for kidledger, read from the environment (and ``.env``)."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///kidledger.db"
DEFAULT_BUDGET_ALERT_PERCENT = 80
DEFAULT_ALLOWANCE_WINDOW_DAYS = 7
DEFAULT_TRANSACTION_PAGE_SIZE = 20


def _int_setting(environ: Mapping[str, str], key: str, default: int, *, minimum: int = 0) -> int:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}.") from exc
    if value < minimum:
        raise ValueError(f"{key} must be at least {minimum}, got {value}.")
    return value


def _bool_setting(environ: Mapping[str, str], key: str) -> bool:
    return environ.get(key, "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    sql_echo: bool = False
    log_path: Optional[Path] = None
    budget_alert_percent: int = DEFAULT_BUDGET_ALERT_PERCENT
    allowance_window_days: int = DEFAULT_ALLOWANCE_WINDOW_DAYS
    transaction_page_size: int = DEFAULT_TRANSACTION_PAGE_SIZE

    @property
    def allowance_window(self) -> timedelta:
        return timedelta(days=self.allowance_window_days)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    log_path = env.get("KIDLEDGER_LOG_PATH")
    alert = _int_setting(env, "KIDLEDGER_BUDGET_ALERT_PERCENT", DEFAULT_BUDGET_ALERT_PERCENT)
    if alert > 100:
        raise ValueError(f"KIDLEDGER_BUDGET_ALERT_PERCENT must be at most 100, got {alert}.")
    return Settings(
        database_url=env.get("KIDLEDGER_DATABASE_URL") or DEFAULT_DATABASE_URL,
        sql_echo=_bool_setting(env, "KIDLEDGER_SQL_ECHO"),
        log_path=Path(log_path) if log_path else None,
        budget_alert_percent=alert,
        allowance_window_days=_int_setting(
            env, "KIDLEDGER_ALLOWANCE_WINDOW_DAYS", DEFAULT_ALLOWANCE_WINDOW_DAYS, minimum=1
        ),
        transaction_page_size=_int_setting(
            env, "KIDLEDGER_TRANSACTION_PAGE_SIZE", DEFAULT_TRANSACTION_PAGE_SIZE, minimum=1
        ),
    )


__all__ = [
    "DEFAULT_ALLOWANCE_WINDOW_DAYS",
    "DEFAULT_BUDGET_ALERT_PERCENT",
    "DEFAULT_DATABASE_URL",
    "DEFAULT_TRANSACTION_PAGE_SIZE",
    "Settings",
    "load_settings",
]
