"""Feed surface abstraction with scroll-aware auto-scroll."""

from abc import ABC, abstractmethod

from .models import RenderedMessage, ScrollState

# Distance from the bottom edge that still counts as "at the bottom"
PIN_THRESHOLD = 50

SYSTEM_PREFIX = "[System]"


class FeedSurface(ABC):
    """Rendering target for a chat feed.

    Subclasses draw; this class owns the ScrollState and decides when to
    follow new content. A user who has scrolled up to read history is never
    pulled back down by an append.
    """

    def __init__(self, pin_threshold: int = PIN_THRESHOLD) -> None:
        self.pin_threshold = pin_threshold
        self._scroll = ScrollState()

    @property
    def scroll_state(self) -> ScrollState:
        return self._scroll

    def append_message(self, message: RenderedMessage) -> None:
        """Append a chat message."""
        self._render_message(message)
        self._follow()

    def append_system_notice(self, text: str) -> None:
        """Append a system line such as a connection notice."""
        self._render_notice(f"{SYSTEM_PREFIX} {text}")
        self._follow()

    def clear(self) -> None:
        """Remove all content; an empty feed counts as caught up."""
        self._render_clear()
        self._scroll.pinned = True

    def show_loading(self, label: str) -> None:
        """Replace the feed with a connecting placeholder."""
        self._render_placeholder(f"Connecting to {label}'s chat...", is_error=False)
        self._scroll.pinned = True

    def show_error(self, message: str) -> None:
        """Replace the feed with an error placeholder."""
        self._render_placeholder(message, is_error=True)
        self._scroll.pinned = True

    def on_scroll(self, top: float, visible: float, total: float) -> None:
        """Record a scroll position.

        Args:
            top: Offset of the top of the viewport.
            visible: Height of the viewport.
            total: Height of the full content.
        """
        self._scroll.pinned = total - (top + visible) <= self.pin_threshold

    def should_auto_scroll(self) -> bool:
        return self._scroll.pinned

    def reset_scroll(self) -> None:
        """Treat the view as pinned (used when a surface is (re)attached)."""
        self._scroll.pinned = True

    def _follow(self) -> None:
        if self.should_auto_scroll():
            self.scroll_to_bottom()

    @abstractmethod
    def scroll_to_bottom(self) -> None:
        """Move the view to the newest content."""

    @abstractmethod
    def _render_message(self, message: RenderedMessage) -> None: ...

    @abstractmethod
    def _render_notice(self, text: str) -> None: ...

    @abstractmethod
    def _render_clear(self) -> None: ...

    @abstractmethod
    def _render_placeholder(self, text: str, is_error: bool) -> None: ...
