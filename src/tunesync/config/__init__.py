"""Configuration module for TuneSync."""

from .settings import (
    DatabaseSettings,
    MusicBrainzSettings,
    RemoteSettings,
    Settings,
    UploaderSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "MusicBrainzSettings",
    "RemoteSettings",
    "Settings",
    "UploaderSettings",
    "get_settings",
]
