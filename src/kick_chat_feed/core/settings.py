"""Settings management for Kick Chat Feed."""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field
from pathlib import Path

from appdirs import user_config_dir

logger = logging.getLogger(__name__)

APP_NAME = "kick-chat-feed"
APP_AUTHOR = "kick-chat-feed"


def get_config_dir() -> Path:
    """Get the configuration directory."""
    path = Path(user_config_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass
class PusherSettings:
    """Kick's public Pusher app configuration."""

    app_key: str = "32cbd69e4b950bf97679"
    cluster: str = "us2"
    protocol: int = 7
    client_name: str = "js"
    client_version: str = "8.3.0"

    @property
    def ws_url(self) -> str:
        return (
            f"wss://ws-{self.cluster}.pusher.com/app/{self.app_key}"
            f"?protocol={self.protocol}&client={self.client_name}"
            f"&version={self.client_version}&flash=false"
        )


@dataclass
class KickSettings:
    """Kick channel lookup settings."""

    api_base: str = "https://kick.com/api/v2"
    proxy_url: str = ""  # e.g. "https://corsproxy.io/?" - empty = direct
    emote_url: str = "https://files.kick.com/emotes/{id}/fullsize"
    user_agent: str = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36"
    request_timeout: int = 15  # seconds


@dataclass
class FeedSettings:
    """Chat feed display settings."""

    pin_threshold: int = 50  # distance from bottom that still counts as pinned
    max_messages: int = 500  # oldest lines are dropped past this


@dataclass
class WindowSettings:
    """Window state settings."""

    width: int = 420
    height: int = 640
    x: int | None = None
    y: int | None = None


@dataclass
class Settings:
    """Application settings."""

    pusher: PusherSettings = field(default_factory=PusherSettings)
    kick: KickSettings = field(default_factory=KickSettings)
    feed: FeedSettings = field(default_factory=FeedSettings)
    window: WindowSettings = field(default_factory=WindowSettings)
    last_channel: str = ""

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from file, falling back to defaults."""
        if path is None:
            path = get_config_dir() / "settings.json"

        if not path.exists():
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return cls._from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable settings file {path}: {e}")
            return cls()

    def save(self, path: Path | None = None) -> None:
        """Save settings to file."""
        if path is None:
            path = get_config_dir() / "settings.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write: write to temp file then rename to prevent corruption on crash
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix="settings_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._to_dict(), f, indent=2)
            os.replace(tmp_path, path)  # Atomic on POSIX
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    @staticmethod
    def _validate_int(value, default: int, min_val: int = 0, max_val: int | None = None) -> int:
        """Validate and constrain an integer value."""
        if not isinstance(value, int) or isinstance(value, bool):
            return default
        if value < min_val:
            return min_val
        if max_val is not None and value > max_val:
            return max_val
        return value

    @classmethod
    def _from_dict(cls, data: dict) -> "Settings":
        """Create settings from dictionary."""
        settings = cls()
        validate = cls._validate_int

        if "pusher" in data:
            p = data["pusher"]
            settings.pusher = PusherSettings(
                app_key=p.get("app_key", settings.pusher.app_key),
                cluster=p.get("cluster", settings.pusher.cluster),
                protocol=validate(p.get("protocol"), 7, 1),
                client_name=p.get("client_name", settings.pusher.client_name),
                client_version=p.get("client_version", settings.pusher.client_version),
            )

        if "kick" in data:
            k = data["kick"]
            settings.kick = KickSettings(
                api_base=k.get("api_base", settings.kick.api_base).rstrip("/"),
                proxy_url=k.get("proxy_url", ""),
                emote_url=k.get("emote_url", settings.kick.emote_url),
                user_agent=k.get("user_agent", settings.kick.user_agent),
                request_timeout=validate(k.get("request_timeout"), 15, 1, 120),
            )

        if "feed" in data:
            fd = data["feed"]
            settings.feed = FeedSettings(
                pin_threshold=validate(fd.get("pin_threshold"), 50, 0, 1000),
                max_messages=validate(fd.get("max_messages"), 500, 50, 10000),
            )

        if "window" in data:
            w = data["window"]
            settings.window = WindowSettings(
                width=validate(w.get("width"), 420, 200),
                height=validate(w.get("height"), 640, 200),
                x=w.get("x"),
                y=w.get("y"),
            )

        settings.last_channel = str(data.get("last_channel", ""))
        return settings

    def _to_dict(self) -> dict:
        """Convert settings to dictionary."""
        return {
            "pusher": asdict(self.pusher),
            "kick": asdict(self.kick),
            "feed": asdict(self.feed),
            "window": asdict(self.window),
            "last_channel": self.last_channel,
        }
