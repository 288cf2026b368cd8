"""Shared test fixtures for kick_chat_feed tests."""

import asyncio

import pytest

from kick_chat_feed.chat.errors import NotFoundError
from kick_chat_feed.chat.feed import FeedSurface
from kick_chat_feed.chat.session import ChatSession


class RecordingSurface(FeedSurface):
    """FeedSurface that records what it was asked to draw."""

    def __init__(self, pin_threshold: int = 50):
        super().__init__(pin_threshold)
        self.events: list[tuple] = []
        self.scroll_count = 0

    def scroll_to_bottom(self):
        self.scroll_count += 1

    def _render_message(self, message):
        self.events.append(("message", message))

    def _render_notice(self, text):
        self.events.append(("notice", text))

    def _render_clear(self):
        self.events.append(("clear",))

    def _render_placeholder(self, text, is_error):
        self.events.append(("error" if is_error else "loading", text))

    def of(self, kind: str) -> list:
        return [event[1] if len(event) > 1 else None for event in self.events if event[0] == kind]


class FakeSubscription:
    def __init__(self, channel_name):
        self.channel_name = channel_name
        self.handlers = {}

    def bind(self, event_name, handler):
        self.handlers.setdefault(event_name, []).append(handler)

    def emit(self, event_name, data):
        for handler in self.handlers.get(event_name, []):
            handler(data)


class FakeClient:
    def __init__(self, on_error=None):
        self.on_error = on_error
        self.subscriptions: list[FakeSubscription] = []
        self.closed = False

    def subscribe(self, channel_name):
        subscription = FakeSubscription(channel_name)
        self.subscriptions.append(subscription)
        return subscription

    def close(self):
        self.closed = True


class FakeTransport:
    def __init__(self):
        self.clients: list[FakeClient] = []

    def open(self, on_error=None):
        client = FakeClient(on_error)
        self.clients.append(client)
        return client


class FakeResolver:
    """Resolves from a dict; names in gates wait for their asyncio.Event."""

    def __init__(self, rooms=None, errors=None):
        self.rooms = dict(rooms or {})
        self.errors = dict(errors or {})
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []

    async def resolve(self, channel_name):
        self.calls.append(channel_name)
        gate = self.gates.get(channel_name)
        if gate is not None:
            await gate.wait()
        if channel_name in self.errors:
            raise self.errors[channel_name]
        if channel_name not in self.rooms:
            raise NotFoundError("Channel not found")
        return self.rooms[channel_name]


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def resolver():
    return FakeResolver(rooms={"Example": 999, "Other": 42})


@pytest.fixture
def session(resolver, transport, surface):
    return ChatSession(resolver, transport, surface)


def chat_payload(username="Bob", content="hi"):
    return {"id": "m1", "sender": {"id": 1, "username": username}, "content": content}


@pytest.fixture
def make_payload():
    return chat_payload


@pytest.fixture
def surface_factory():
    return RecordingSurface
