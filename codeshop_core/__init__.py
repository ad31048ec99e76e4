"""Core modules for the Codeshop Discord bot."""

from .config import Config, CurrencySettings, LiveDisplaySettings, LoggingChannels, load_config
from .database import CompletedOrder, SalesHistory, TenantDatabase, TenantStore
from .errors import (
    CodeExistsError,
    CodeshopError,
    InsufficientStockError,
    OrderStateError,
    ProductExistsError,
    StoreError,
    TargetGone,
)
from .live_displays import DisplayKind, LiveDisplayHandle, LiveDisplayRegistry
from .messaging import DiscordMessenger
from .renderer import Artifact, render
from .scheduler import RefreshRequest, UpdateScheduler

__all__ = [
    "Config",
    "CurrencySettings",
    "LiveDisplaySettings",
    "LoggingChannels",
    "load_config",
    "CompletedOrder",
    "SalesHistory",
    "TenantDatabase",
    "TenantStore",
    "CodeshopError",
    "StoreError",
    "ProductExistsError",
    "CodeExistsError",
    "InsufficientStockError",
    "OrderStateError",
    "TargetGone",
    "DisplayKind",
    "LiveDisplayHandle",
    "LiveDisplayRegistry",
    "DiscordMessenger",
    "Artifact",
    "render",
    "RefreshRequest",
    "UpdateScheduler",
]
