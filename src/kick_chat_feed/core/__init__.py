"""Core configuration for Kick Chat Feed."""

from .settings import FeedSettings, KickSettings, PusherSettings, Settings

__all__ = [
    "FeedSettings",
    "KickSettings",
    "PusherSettings",
    "Settings",
]
