"""Chat session state machine: resolve, subscribe, render, tear down."""

import logging
from typing import Any

from PySide6.QtCore import QObject, Signal

from ..core.settings import KickSettings
from .content import normalize_channel_name, render_event
from .errors import InvalidInputError, MalformedEventError, ResolutionError, TransportError
from .feed import FeedSurface
from .models import ChatEvent, RoomId, Session, SessionState
from .resolver import RoomResolver
from .transport import CHAT_MESSAGE_EVENT, PusherTransport, chatroom_channel

logger = logging.getLogger(__name__)


class ChatSession(QObject):
    """Connects one feed surface to one Kick chatroom at a time.

    All methods must be called from the event loop thread. Late results from
    a superseded connect() or a torn-down subscription are discarded by
    comparing the generation they were issued under.
    """

    # Emitted with the channel name once subscribed
    connected = Signal(str)
    disconnected = Signal()
    error = Signal(str)
    state_changed = Signal(str)  # SessionState value

    def __init__(
        self,
        resolver: RoomResolver,
        transport: PusherTransport,
        surface: FeedSurface,
        kick_settings: KickSettings | None = None,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._resolver = resolver
        self._transport = transport
        self._surface = surface
        self._emote_url = (kick_settings or KickSettings()).emote_url
        self._session = Session()
        self._state = SessionState.IDLE

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def room_id(self) -> RoomId | None:
        return self._session.room_id

    @property
    def channel_name(self) -> str | None:
        return self._session.channel_name

    @property
    def subscription(self) -> Any:
        return self._session.subscription

    @property
    def surface(self) -> FeedSurface:
        return self._surface

    @property
    def is_connected(self) -> bool:
        return self._session.is_active

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            self._state = state
            self.state_changed.emit(state.value)

    def _is_current(self, generation: int) -> bool:
        return generation == self._session.generation

    async def connect(self, raw_name: str) -> None:
        """Connect to a channel's chat. Errors end up on the surface, never raised."""
        try:
            name = normalize_channel_name(raw_name)
        except InvalidInputError as e:
            logger.warning(str(e))
            self._surface.show_error("Invalid username")
            self.error.emit("Invalid username")
            return

        if name == self._session.channel_name and self._session.is_active:
            logger.debug(f"Already connected to {name}")
            return

        self.disconnect()
        self._session.generation += 1
        generation = self._session.generation

        self._surface.show_loading(name)
        self._set_state(SessionState.RESOLVING)

        try:
            room_id = await self._resolver.resolve(name)
            if not self._is_current(generation):
                logger.debug(f"Dropping stale lookup result for {name} (chatroom {room_id})")
                return
            self._subscribe(name, room_id, generation)
        except ResolutionError as e:
            self._connect_failed(name, generation, e)
        except Exception as e:
            logger.exception(f"Unexpected error connecting to {name}")
            self._connect_failed(name, generation, e)

    def _connect_failed(self, name: str, generation: int, error: Exception) -> None:
        if not self._is_current(generation):
            logger.debug(f"Dropping stale connect failure for {name}: {error}")
            return
        logger.error(f"Kick chat error ({error.__class__.__name__}) for {name}: {error}")
        message = f"Unable to connect to {name}'s chat: {error}"
        self.disconnect()
        self._surface.show_error(message)
        self.error.emit(message)

    def _subscribe(self, name: str, room_id: RoomId, generation: int) -> None:
        client = self._transport.open(
            on_error=lambda e: self._on_transport_error(generation, e)
        )
        try:
            subscription = client.subscribe(chatroom_channel(room_id))
        except Exception:
            client.close()
            raise

        self._surface.clear()
        self._surface.append_system_notice(f"Connected to {name}'s chat")

        subscription.bind(CHAT_MESSAGE_EVENT, lambda data: self._on_chat_event(generation, data))

        self._session.room_id = room_id
        self._session.channel_name = name
        self._session.client = client
        self._session.subscription = subscription
        self._set_state(SessionState.CONNECTED)
        logger.info(f"Subscribed to {subscription.channel_name} for {name}")
        self.connected.emit(name)

    def _on_chat_event(self, generation: int, data: Any) -> None:
        if not self._is_current(generation):
            return
        try:
            event = ChatEvent.from_payload(data)
        except MalformedEventError as e:
            logger.debug(f"Discarding chat event: {e}")
            return
        self._surface.append_message(render_event(event, self._emote_url))

    def _on_transport_error(self, generation: int, error: TransportError) -> None:
        if not self._is_current(generation):
            return
        name = self._session.channel_name
        self.disconnect()
        self._surface.append_system_notice(f"Chat connection lost: {error}")
        self.error.emit(f"{name}: {error}")

    def disconnect(self) -> None:
        """Close the current subscription, if any. Safe to call in any state."""
        had_client = self._session.client is not None
        if had_client:
            self._session.client.close()
        self._session.reset()
        self._session.generation += 1
        self._set_state(SessionState.IDLE)
        if had_client:
            logger.info("Disconnected from chat")
            self.disconnected.emit()

    def rebind_surface(self, surface: FeedSurface) -> None:
        """Render into a different surface; the subscription is left alone."""
        self._surface = surface
        surface.reset_scroll()
