"""Error types raised by the chat feed core."""


class ChatFeedError(Exception):
    """Base class for all chat feed errors."""


class InvalidInputError(ChatFeedError):
    """Channel name was empty after normalization."""


class ResolutionError(ChatFeedError):
    """Channel name could not be resolved to a chatroom."""


class NotFoundError(ResolutionError):
    """The lookup reported no such channel, or the payload had no chatroom id."""


class UnavailableError(ResolutionError):
    """The lookup request itself failed (transport error or bad status)."""


class MalformedEventError(ChatFeedError):
    """An inbound chat event is missing its sender or content."""


class TransportError(ChatFeedError):
    """The Pusher connection reported a protocol error or closed unexpectedly."""
