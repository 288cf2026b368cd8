"""Data models for the chat feed."""

import colorsys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import MalformedEventError

# Kick chatroom ids are integers
RoomId = int


class SessionState(str, Enum):
    """ChatSession lifecycle states."""

    IDLE = "idle"
    RESOLVING = "resolving"
    CONNECTED = "connected"


@dataclass(frozen=True)
class ColorTag:
    """HSL colour assigned to a chat author."""

    hue: int
    saturation: int  # percent
    lightness: int  # percent

    def __str__(self) -> str:
        return f"hsl({self.hue}, {self.saturation}%, {self.lightness}%)"

    def to_hex(self) -> str:
        """Return the colour as #rrggbb (Qt rich text has no hsl())."""
        r, g, b = colorsys.hls_to_rgb(
            self.hue / 360.0, self.lightness / 100.0, self.saturation / 100.0
        )
        return f"#{round(r * 255):02x}{round(g * 255):02x}{round(b * 255):02x}"


@dataclass
class ChatEvent:
    """A normalized inbound chat message event.

    Built from untrusted Pusher payloads; see from_payload().
    """

    username: str | None
    content: str

    @classmethod
    def from_payload(cls, data: Any) -> "ChatEvent":
        """Validate a ChatMessageEvent payload.

        Raises:
            MalformedEventError: If the payload has no sender or no content.
        """
        if not isinstance(data, dict):
            raise MalformedEventError(f"Event payload is not an object: {type(data).__name__}")

        sender = data.get("sender")
        content = data.get("content")
        if not sender:
            raise MalformedEventError("Event has no sender")
        if not content:
            raise MalformedEventError("Event has no content")

        username = sender.get("username") if isinstance(sender, dict) else None
        return cls(
            username=str(username) if username else None,
            content=str(content),
        )


@dataclass(frozen=True)
class RenderedMessage:
    """A chat message ready for the feed surface."""

    display_name: str
    color: ColorTag
    html_content: str  # escaped, then emote substituted


@dataclass
class ScrollState:
    """Whether the feed view is pinned to its newest content."""

    pinned: bool = True


@dataclass
class Session:
    """Connection state owned by a single ChatSession.

    subscription is set iff room_id is set. generation increases on every
    connect attempt and teardown so late callbacks can detect they are stale.
    """

    room_id: RoomId | None = None
    channel_name: str | None = None
    client: Any = None
    subscription: Any = None
    generation: int = field(default=0)

    @property
    def is_active(self) -> bool:
        return self.subscription is not None

    def reset(self) -> None:
        """Forget the current room and handles (generation is kept)."""
        self.room_id = None
        self.channel_name = None
        self.client = None
        self.subscription = None
