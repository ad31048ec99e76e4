"""Configuration management for Codeshop."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .constants import (
    DEFAULT_DATA_DIR,
    DEFAULT_EDIT_DELAY_SECONDS,
    DEFAULT_LEADERBOARD_EMPTY_TEXT,
    DEFAULT_LEADERBOARD_LIMIT,
    DEFAULT_REFRESH_INTERVAL_SECONDS,
    DEFAULT_STOCK_EMPTY_TEXT,
    DEFAULT_SWEEP_STAGGER_SECONDS,
)

CONFIG_PATH = Path("config.json")


@dataclass(frozen=True)
class LoggingChannels:
    errors: int | None = None
    audit: int | None = None


@dataclass(frozen=True)
class CurrencySettings:
    symbol: str = "Rp"
    thousands_separator: str = "."


@dataclass(frozen=True)
class LiveDisplaySettings:
    """Timing and wording of the live stock board and leaderboard."""
    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS
    edit_delay_seconds: float = DEFAULT_EDIT_DELAY_SECONDS
    sweep_stagger_seconds: float = DEFAULT_SWEEP_STAGGER_SECONDS
    leaderboard_limit: int = DEFAULT_LEADERBOARD_LIMIT
    stock_empty_text: str = DEFAULT_STOCK_EMPTY_TEXT
    leaderboard_empty_text: str = DEFAULT_LEADERBOARD_EMPTY_TEXT


@dataclass(frozen=True)
class Config:
    token: str
    bot_prefix: str = "!"
    data_dir: str = DEFAULT_DATA_DIR
    admin_role_ids: list[int] = field(default_factory=list)
    logging_channels: LoggingChannels = field(default_factory=LoggingChannels)
    currency: CurrencySettings = field(default_factory=CurrencySettings)
    live_displays: LiveDisplaySettings = field(default_factory=LiveDisplaySettings)


def _optional_id(value: Any, *, field_name: str) -> int | None:
    if value in (None, "", 0):
        return None
    try:
        channel_id = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be an integer ID (got {value!r})") from exc
    if channel_id <= 0:
        raise ValueError(f"{field_name} must be a positive integer (got {channel_id})")
    return channel_id


def _parse_admin_role_ids(payload: Any) -> list[int]:
    if not payload:
        return []
    if not isinstance(payload, list):
        raise ValueError("admin_role_ids must be a list of role IDs")
    role_ids: list[int] = []
    for item in payload:
        role_id = _optional_id(item, field_name="admin_role_ids entry")
        if role_id is None:
            raise ValueError(f"admin_role_ids entry must be a positive integer (got {item!r})")
        role_ids.append(role_id)
    return role_ids


def _parse_logging_channels(payload: dict[str, Any] | None) -> LoggingChannels:
    if not payload:
        return LoggingChannels()
    if not isinstance(payload, dict):
        raise ValueError("logging_channels must be an object")
    return LoggingChannels(
        errors=_optional_id(payload.get("errors"), field_name="logging_channels.errors"),
        audit=_optional_id(payload.get("audit"), field_name="logging_channels.audit"),
    )


def _parse_currency(payload: dict[str, Any] | None) -> CurrencySettings:
    if not payload:
        return CurrencySettings()
    if not isinstance(payload, dict):
        raise ValueError("currency must be an object")

    symbol = str(payload.get("symbol", "Rp")).strip()
    if not symbol:
        raise ValueError("currency.symbol must not be empty")
    separator = str(payload.get("thousands_separator", "."))
    return CurrencySettings(symbol=symbol, thousands_separator=separator)


def _positive_number(payload: dict[str, Any], key: str, default: float, *, cast=float) -> Any:
    raw = payload.get(key, default)
    try:
        value = cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"live_displays.{key} must be a number (got {raw!r})") from exc
    if value < 0:
        raise ValueError(f"live_displays.{key} must be non-negative (got {value})")
    return value


def _parse_live_displays(payload: dict[str, Any] | None) -> LiveDisplaySettings:
    """Parse live display timing settings from configuration."""
    if not payload:
        return LiveDisplaySettings()
    if not isinstance(payload, dict):
        raise ValueError("live_displays must be an object")

    refresh_interval = _positive_number(
        payload, "refresh_interval_seconds", DEFAULT_REFRESH_INTERVAL_SECONDS, cast=int
    )
    if refresh_interval == 0:
        raise ValueError("live_displays.refresh_interval_seconds must be positive")

    leaderboard_limit = _positive_number(
        payload, "leaderboard_limit", DEFAULT_LEADERBOARD_LIMIT, cast=int
    )
    if not 1 <= leaderboard_limit <= 25:
        raise ValueError(
            f"live_displays.leaderboard_limit must be between 1 and 25 (got {leaderboard_limit})"
        )

    return LiveDisplaySettings(
        refresh_interval_seconds=refresh_interval,
        edit_delay_seconds=_positive_number(payload, "edit_delay_seconds", DEFAULT_EDIT_DELAY_SECONDS),
        sweep_stagger_seconds=_positive_number(
            payload, "sweep_stagger_seconds", DEFAULT_SWEEP_STAGGER_SECONDS
        ),
        leaderboard_limit=leaderboard_limit,
        stock_empty_text=str(payload.get("stock_empty_text", DEFAULT_STOCK_EMPTY_TEXT)),
        leaderboard_empty_text=str(payload.get("leaderboard_empty_text", DEFAULT_LEADERBOARD_EMPTY_TEXT)),
    )


def load_config(config_path: str | Path = CONFIG_PATH) -> Config:
    """Load and parse configuration from JSON file."""
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            "Please copy config.example.json to config.json and fill in your values."
        )

    with path.open("r", encoding="utf-8") as file:
        data: dict[str, Any] = json.load(file)

    return Config(
        token=data.get("token", ""),
        bot_prefix=data.get("bot_prefix", "!"),
        data_dir=str(data.get("data_dir", DEFAULT_DATA_DIR)),
        admin_role_ids=_parse_admin_role_ids(data.get("admin_role_ids")),
        logging_channels=_parse_logging_channels(data.get("logging_channels")),
        currency=_parse_currency(data.get("currency")),
        live_displays=_parse_live_displays(data.get("live_displays")),
    )
