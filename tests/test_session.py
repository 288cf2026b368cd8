"""Tests for the ChatSession state machine."""

import asyncio

from kick_chat_feed.chat.content import color_for
from kick_chat_feed.chat.errors import TransportError, UnavailableError
from kick_chat_feed.chat.models import SessionState
from kick_chat_feed.chat.transport import CHAT_MESSAGE_EVENT


def _connect(session, name):
    asyncio.run(session.connect(name))


# --- connect ---


def test_connect_scenario(session, resolver, transport, surface):
    _connect(session, "@Example ")

    assert resolver.calls == ["Example"]
    assert session.state == SessionState.CONNECTED
    assert session.channel_name == "Example"
    assert session.room_id == 999
    assert session.subscription.channel_name == "chatrooms.999.v2"
    assert "999" in session.subscription.channel_name
    assert len(transport.clients) == 1

    kinds = [event[0] for event in surface.events]
    assert kinds == ["loading", "clear", "notice"]
    assert surface.of("loading") == ["Connecting to Example's chat..."]
    notices = surface.of("notice")
    assert len(notices) == 1
    assert "Example" in notices[0]


def test_connect_binds_chat_event(session):
    _connect(session, "Example")
    assert CHAT_MESSAGE_EVENT in session.subscription.handlers


def test_connect_same_name_is_noop(session, resolver, transport, surface):
    _connect(session, "Example")
    subscription = session.subscription
    events_before = list(surface.events)

    _connect(session, " @Example")

    assert session.subscription is subscription
    assert session.room_id == 999
    assert resolver.calls == ["Example"]
    assert len(transport.clients) == 1
    assert surface.events == events_before


def test_connect_new_name_disconnects_first(session, transport):
    _connect(session, "Example")
    first_client = transport.clients[0]

    _connect(session, "Other")

    assert first_client.closed
    assert session.room_id == 42
    assert session.subscription.channel_name == "chatrooms.42.v2"
    assert len(transport.clients) == 2


def test_connect_empty_name(session, resolver, surface):
    errors = []
    session.error.connect(errors.append)

    _connect(session, "  @ ")

    assert resolver.calls == []
    assert session.state == SessionState.IDLE
    assert surface.of("error") == ["Invalid username"]
    assert errors == ["Invalid username"]


def test_connect_empty_name_keeps_existing_connection(session, transport):
    _connect(session, "Example")
    _connect(session, "")
    assert session.is_connected
    assert not transport.clients[0].closed


def test_connect_not_found(session, surface):
    _connect(session, "Missing")

    assert session.state == SessionState.IDLE
    assert session.subscription is None
    assert session.room_id is None
    errors = surface.of("error")
    assert len(errors) == 1
    assert errors[0].startswith("Unable to connect to Missing's chat:")


def test_connect_unavailable(session, resolver, surface):
    resolver.errors["Example"] = UnavailableError("API unavailable (HTTP 503)")
    _connect(session, "Example")
    assert session.state == SessionState.IDLE
    assert "HTTP 503" in surface.of("error")[0]


def test_connect_unexpected_lookup_error(session, resolver, surface):
    resolver.errors["Example"] = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
    emitted = []
    session.error.connect(emitted.append)

    _connect(session, "Example")

    assert session.state == SessionState.IDLE
    assert session.channel_name is None
    errors = surface.of("error")
    assert len(errors) == 1
    assert errors[0].startswith("Unable to connect to Example's chat:")
    assert emitted == errors


def test_connect_subscribe_failure_closes_client(session, transport, surface, monkeypatch):
    def refuse(channel_name):
        raise RuntimeError("socket gone")

    real_open = transport.open

    def open_refusing(on_error=None):
        client = real_open(on_error)
        monkeypatch.setattr(client, "subscribe", refuse)
        return client

    monkeypatch.setattr(transport, "open", open_refusing)

    _connect(session, "Example")

    assert transport.clients[0].closed
    assert session.state == SessionState.IDLE
    assert session.subscription is None
    assert "socket gone" in surface.of("error")[0]


def test_chat_event_with_lone_surrogate_username(session, surface, make_payload):
    _connect(session, "Example")
    session.subscription.emit(CHAT_MESSAGE_EVENT, make_payload(username="\ud83dBob"))

    message = surface.of("message")[0]
    assert message.display_name == "\ud83dBob"
    assert message.color == color_for("\ud83dBob")


def test_failed_reconnect_tears_down_previous(session, transport):
    _connect(session, "Example")
    _connect(session, "Missing")

    assert transport.clients[0].closed
    assert session.subscription is None
    assert session.channel_name is None


def test_connect_emits_signals(session):
    connected = []
    states = []
    session.connected.connect(connected.append)
    session.state_changed.connect(states.append)

    _connect(session, "Example")

    assert connected == ["Example"]
    assert states == ["resolving", "connected"]


# --- stale results ---


def test_superseded_lookup_is_discarded(session, resolver, transport, surface):
    async def scenario():
        gate = asyncio.Event()
        resolver.gates["Example"] = gate
        slow = asyncio.create_task(session.connect("Example"))
        await asyncio.sleep(0)
        assert session.state == SessionState.RESOLVING

        await session.connect("Other")
        gate.set()
        await slow

    asyncio.run(scenario())

    assert session.channel_name == "Other"
    assert session.room_id == 42
    assert len(transport.clients) == 1
    assert transport.clients[0].subscriptions[0].channel_name == "chatrooms.42.v2"
    assert not any("Example" in notice for notice in surface.of("notice"))


def test_lookup_after_disconnect_is_discarded(session, resolver, transport):
    async def scenario():
        gate = asyncio.Event()
        resolver.gates["Example"] = gate
        pending = asyncio.create_task(session.connect("Example"))
        await asyncio.sleep(0)
        session.disconnect()
        gate.set()
        await pending

    asyncio.run(scenario())

    assert session.state == SessionState.IDLE
    assert transport.clients == []


def test_failed_lookup_after_supersede_shows_no_error(session, resolver, surface):
    async def scenario():
        gate = asyncio.Event()
        resolver.gates["Missing"] = gate
        pending = asyncio.create_task(session.connect("Missing"))
        await asyncio.sleep(0)
        await session.connect("Example")
        gate.set()
        await pending

    asyncio.run(scenario())

    assert session.state == SessionState.CONNECTED
    assert surface.of("error") == []


def test_events_from_old_subscription_are_dropped(session, surface, make_payload):
    _connect(session, "Example")
    old_subscription = session.subscription
    _connect(session, "Other")
    appended = len(surface.of("message"))

    old_subscription.emit(CHAT_MESSAGE_EVENT, make_payload())

    assert len(surface.of("message")) == appended


# --- inbound events ---


def test_chat_event_bob(session, surface, make_payload):
    _connect(session, "Example")
    session.subscription.emit(CHAT_MESSAGE_EVENT, make_payload("Bob", "hi [emote:5:Wow]"))

    messages = surface.of("message")
    assert len(messages) == 1
    message = messages[0]
    assert message.display_name == "Bob"
    assert message.color == color_for("Bob")
    assert message.html_content.count("<img") == 1
    assert "/emotes/5/" in message.html_content


def test_event_without_content_is_discarded(session, surface):
    _connect(session, "Example")
    before = len(surface.events)

    session.subscription.emit(CHAT_MESSAGE_EVENT, {"sender": {"username": "Bob"}})

    assert len(surface.events) == before


def test_event_without_sender_is_discarded(session, surface):
    _connect(session, "Example")
    before = len(surface.events)
    session.subscription.emit(CHAT_MESSAGE_EVENT, {"content": "hi"})
    assert len(surface.events) == before


def test_event_without_username_is_unknown(session, surface):
    _connect(session, "Example")
    session.subscription.emit(CHAT_MESSAGE_EVENT, {"sender": {"id": 3}, "content": "hi"})
    assert surface.of("message")[0].display_name == "Unknown"


def test_events_render_in_delivery_order(session, surface, make_payload):
    _connect(session, "Example")
    for i in range(5):
        session.subscription.emit(CHAT_MESSAGE_EVENT, make_payload("Bob", f"msg {i}"))
    assert [m.html_content for m in surface.of("message")] == [f"msg {i}" for i in range(5)]


def test_script_content_is_inert(session, surface, make_payload):
    _connect(session, "Example")
    session.subscription.emit(
        CHAT_MESSAGE_EVENT, make_payload("Eve", "<script>x()</script> [emote:1:Hi]")
    )
    html = surface.of("message")[0].html_content
    assert "<script>" not in html
    assert html.count("<img") == 1


# --- disconnect ---


def test_disconnect_idempotent(session, transport):
    _connect(session, "Example")

    session.disconnect()
    session.disconnect()

    assert transport.clients[0].closed
    assert session.state == SessionState.IDLE
    assert session.subscription is None
    assert session.room_id is None
    assert session.channel_name is None


def test_disconnect_from_idle(session):
    disconnected = []
    session.disconnected.connect(lambda: disconnected.append(True))

    session.disconnect()

    assert session.state == SessionState.IDLE
    assert session.subscription is None
    assert disconnected == []


def test_reconnect_same_name_after_disconnect(session, resolver, transport):
    _connect(session, "Example")
    session.disconnect()
    _connect(session, "Example")
    assert resolver.calls == ["Example", "Example"]
    assert len(transport.clients) == 2
    assert session.is_connected


# --- transport errors ---


def test_transport_error_tears_down(session, transport, surface):
    _connect(session, "Example")
    client = transport.clients[0]

    client.on_error(TransportError("Connection closed by server"))

    assert client.closed
    assert session.state == SessionState.IDLE
    assert surface.of("notice")[-1] == "[System] Chat connection lost: Connection closed by server"


def test_stale_transport_error_ignored(session, transport, surface):
    _connect(session, "Example")
    old_client = transport.clients[0]
    _connect(session, "Other")

    old_client.on_error(TransportError("late"))

    assert session.is_connected
    assert session.channel_name == "Other"


# --- rebind_surface ---


def test_rebind_surface(session, surface, surface_factory, make_payload):
    _connect(session, "Example")
    subscription = session.subscription

    other = surface_factory()
    other.on_scroll(top=0, visible=100, total=5000)
    session.rebind_surface(other)

    assert session.surface is other
    assert session.subscription is subscription
    assert other.should_auto_scroll()

    session.subscription.emit(CHAT_MESSAGE_EVENT, make_payload("Bob", "hello"))
    assert len(other.of("message")) == 1
    assert surface.of("message") == []


def test_sessions_are_independent(resolver, transport, surface_factory):
    from kick_chat_feed.chat.session import ChatSession

    first = ChatSession(resolver, transport, surface_factory())
    second = ChatSession(resolver, transport, surface_factory())

    asyncio.run(first.connect("Example"))
    asyncio.run(second.connect("Other"))
    first.disconnect()

    assert first.subscription is None
    assert second.is_connected
    assert second.room_id == 42
