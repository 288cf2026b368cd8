"""Minimal Pusher client for Kick chat, over an aiohttp WebSocket.

open(), subscribe(), bind() and close() never block the caller: the socket
runs in a background task on the current event loop and delivers events to
bound handlers in the order they arrive.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from ..core.settings import PusherSettings
from .errors import TransportError
from .models import RoomId

logger = logging.getLogger(__name__)

# Kick's event name for new chat messages
CHAT_MESSAGE_EVENT = "App\\Events\\ChatMessageEvent"

EventHandler = Callable[[Any], None]
ErrorHandler = Callable[[TransportError], None]


def chatroom_channel(room_id: RoomId) -> str:
    """Pusher channel carrying a chatroom's messages."""
    return f"chatrooms.{room_id}.v2"


def decode_event_data(raw: Any) -> Any:
    """Pusher wraps event payloads as JSON strings; unwrap them."""
    if isinstance(raw, str) and raw:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return {}
    return raw if isinstance(raw, dict) else {}


class PusherSubscription:
    """A subscribed Pusher channel with its bound event handlers."""

    def __init__(self, client: "PusherClient", channel_name: str) -> None:
        self.client = client
        self.channel_name = channel_name
        self.subscribed = False
        self._handlers: dict[str, list[EventHandler]] = {}

    def bind(self, event_name: str, handler: EventHandler) -> None:
        """Call handler with the decoded payload of every event_name event."""
        self._handlers.setdefault(event_name, []).append(handler)

    def emit(self, event_name: str, data: Any) -> None:
        """Deliver an event to its handlers."""
        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(data)
            except Exception:
                logger.exception(f"Handler for {event_name} on {self.channel_name} failed")


class PusherClient:
    """One Pusher WebSocket connection and its channel subscriptions."""

    def __init__(
        self,
        settings: PusherSettings,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self.settings = settings
        self._on_error = on_error
        self._subscriptions: dict[str, PusherSubscription] = {}
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task | None = None
        self._send_tasks: set[asyncio.Task] = set()
        self._socket_id: str | None = None
        self._closed = False

    @property
    def socket_id(self) -> str | None:
        return self._socket_id

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def subscriptions(self) -> dict[str, PusherSubscription]:
        return dict(self._subscriptions)

    def start(self) -> None:
        """Start the connection task on the running loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    def subscribe(self, channel_name: str) -> PusherSubscription:
        """Subscribe to a channel; the request is sent once the socket is ready."""
        subscription = self._subscriptions.get(channel_name)
        if subscription is None:
            subscription = PusherSubscription(self, channel_name)
            self._subscriptions[channel_name] = subscription
            if self._socket_id is not None:
                self._send_soon(self._subscribe_frame(channel_name))
        return subscription

    def close(self) -> None:
        """Drop all subscriptions and close the socket."""
        if self._closed:
            return
        self._closed = True
        self._subscriptions.clear()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        for task in list(self._send_tasks):
            task.cancel()
        self._send_tasks.clear()
        logger.debug("Pusher client closed")

    @staticmethod
    def _subscribe_frame(channel_name: str) -> dict:
        return {
            "event": "pusher:subscribe",
            "data": {"auth": "", "channel": channel_name},
        }

    def _send_soon(self, frame: dict) -> None:
        task = asyncio.get_running_loop().create_task(self._send(frame))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def _send(self, frame: dict) -> None:
        if self._ws is None or self._ws.closed:
            return
        try:
            await self._ws.send_str(json.dumps(frame))
        except (aiohttp.ClientError, ConnectionError) as e:
            if not self._closed:
                self._report_error(TransportError(f"Send failed: {e}"))

    def _report_error(self, error: TransportError) -> None:
        logger.error(f"Pusher connection error: {error}")
        if self._on_error is not None:
            self._on_error(error)

    async def _run(self) -> None:
        """Connect and read frames until closed."""
        try:
            self._session = aiohttp.ClientSession()
            self._ws = await self._session.ws_connect(self.settings.ws_url, heartbeat=60)
            logger.debug(f"Pusher socket open: {self.settings.ws_url}")
            await self._read_loop()
            if not self._closed:
                self._report_error(TransportError("Connection closed by server"))
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            if not self._closed:
                self._report_error(TransportError(f"Connection failed: {e}"))
        finally:
            await self._cleanup()

    async def _read_loop(self) -> None:
        async for msg in self._ws:
            if self._closed:
                break
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    frame = json.loads(msg.data)
                except json.JSONDecodeError:
                    continue
                if isinstance(frame, dict):
                    await self._handle_frame(frame)
            elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                break

    async def _handle_frame(self, frame: dict) -> None:
        """Handle one Pusher protocol frame."""
        event = frame.get("event", "")
        data = decode_event_data(frame.get("data"))

        if event == "pusher:connection_established":
            self._socket_id = data.get("socket_id")
            logger.debug(f"Pusher connected, socket_id={self._socket_id}")
            for channel_name in list(self._subscriptions):
                await self._send(self._subscribe_frame(channel_name))
        elif event == "pusher:ping":
            await self._send({"event": "pusher:pong", "data": {}})
        elif event == "pusher:error":
            self._report_error(
                TransportError(f"Pusher error {data.get('code')}: {data.get('message', '')}")
            )
        elif event == "pusher_internal:subscription_succeeded":
            subscription = self._subscriptions.get(frame.get("channel", ""))
            if subscription is not None:
                subscription.subscribed = True
                logger.debug(f"Subscribed to {subscription.channel_name}")
        else:
            subscription = self._subscriptions.get(frame.get("channel", ""))
            if subscription is not None:
                subscription.emit(event, data)

    async def _cleanup(self) -> None:
        """Clean up WebSocket and session."""
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self._socket_id = None


class PusherTransport:
    """Opens PusherClient connections with a fixed app configuration."""

    def __init__(self, settings: PusherSettings | None = None) -> None:
        self.settings = settings or PusherSettings()

    def open(self, on_error: ErrorHandler | None = None) -> PusherClient:
        """Create a client and start connecting in the background."""
        client = PusherClient(self.settings, on_error=on_error)
        client.start()
        return client
