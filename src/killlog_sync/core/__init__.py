"""
Killlog Sync Core

Shared infrastructure: settings, logging, time helpers and the XML API client.
"""

from .api_client import (
    AccountCharacter,
    AccountInfo,
    EveApiClient,
    Kill,
    KillLog,
    RemoteApi,
    RemoteError,
)
from .config import KilllogSettings, get_settings, reset_settings
from .formatters import (
    epoch_now,
    format_duration,
    format_timestamp,
    get_utc_now,
    get_utc_timestamp,
    parse_api_datetime,
)
from .logging import get_logger

__all__ = [
    # Client
    "AccountCharacter",
    "AccountInfo",
    "EveApiClient",
    "Kill",
    "KillLog",
    "RemoteApi",
    "RemoteError",
    # Config
    "KilllogSettings",
    "get_settings",
    "reset_settings",
    # Formatters
    "epoch_now",
    "format_duration",
    "format_timestamp",
    "get_utc_now",
    "get_utc_timestamp",
    "parse_api_datetime",
    # Logging
    "get_logger",
]
