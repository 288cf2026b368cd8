"""Kick chat feed core: lookup, transport, rendering and session handling."""

from .content import color_for, escape, render_event, substitute_emotes
from .errors import (
    ChatFeedError,
    InvalidInputError,
    MalformedEventError,
    NotFoundError,
    ResolutionError,
    TransportError,
    UnavailableError,
)
from .feed import FeedSurface
from .models import ChatEvent, ColorTag, RenderedMessage, Session, SessionState
from .resolver import RoomResolver
from .session import ChatSession
from .transport import PusherClient, PusherSubscription, PusherTransport

__all__ = [
    "ChatEvent",
    "ChatFeedError",
    "ChatSession",
    "ColorTag",
    "FeedSurface",
    "InvalidInputError",
    "MalformedEventError",
    "NotFoundError",
    "PusherClient",
    "PusherSubscription",
    "PusherTransport",
    "RenderedMessage",
    "ResolutionError",
    "RoomResolver",
    "Session",
    "SessionState",
    "TransportError",
    "UnavailableError",
    "color_for",
    "escape",
    "render_event",
    "substitute_emotes",
]
