"""Message content pipeline: author colours, HTML escaping, Kick emotes."""

import html
import logging

from .errors import InvalidInputError
from .models import ChatEvent, ColorTag, RenderedMessage

logger = logging.getLogger(__name__)

KICK_EMOTE_URL = "https://files.kick.com/emotes/{id}/fullsize"
EMOTE_PREFIX = "[emote:"
EMOTE_CLASS = "kick-chat-emote"

# Readable on a dark background
NAME_SATURATION = 70
NAME_LIGHTNESS = 65

UNKNOWN_USER = "Unknown"


def _to_int32(value: int) -> int:
    """Wrap an integer into the signed 32-bit range."""
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def name_hash(name: str) -> int:
    """Signed 32-bit rolling hash (h * 31 + code) over the UTF-16 code units of name."""
    h = 0
    encoded = name.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(encoded), 2):
        code = encoded[i] | (encoded[i + 1] << 8)
        h = _to_int32(h * 31 + code)
    return h


def color_for(name: str) -> ColorTag:
    """Return a stable colour for a username."""
    hue = abs(name_hash(name)) % 360
    return ColorTag(hue=hue, saturation=NAME_SATURATION, lightness=NAME_LIGHTNESS)


def escape(text: str) -> str:
    """Escape markup-significant characters so text renders inert."""
    return html.escape(text, quote=True)


def emote_html(emote_id: str, name: str, url_template: str = KICK_EMOTE_URL) -> str:
    """Build the <img> markup for a Kick emote.

    name must already be escaped.
    """
    url = url_template.format(id=emote_id)
    return f'<img src="{url}" alt="{name}" title="{name}" class="{EMOTE_CLASS}">'


def _scan_emote(text: str, start: int) -> tuple[int, str, str] | None:
    """Parse an [emote:ID:name] token beginning at start.

    Returns (end, emote_id, name) or None when the token is malformed.
    """
    pos = start + len(EMOTE_PREFIX)
    id_start = pos
    while pos < len(text) and text[pos].isascii() and text[pos].isdigit():
        pos += 1
    if pos == id_start or pos >= len(text) or text[pos] != ":":
        return None
    emote_id = text[id_start:pos]

    name_start = pos + 1
    close = text.find("]", name_start)
    if close == -1:
        return None
    name = text[name_start:close]
    if not name or "[" in name:
        return None
    return close + 1, emote_id, name


def substitute_emotes(text: str, url_template: str = KICK_EMOTE_URL) -> str:
    """Replace [emote:ID:name] tokens with <img> tags.

    Malformed tokens are left as literal text. Expects already-escaped input.
    """
    parts: list[str] = []
    last_end = 0
    search_from = 0

    while True:
        start = text.find(EMOTE_PREFIX, search_from)
        if start == -1:
            break
        token = _scan_emote(text, start)
        if token is None:
            search_from = start + 1
            continue
        end, emote_id, name = token
        parts.append(text[last_end:start])
        parts.append(emote_html(emote_id, name, url_template))
        last_end = search_from = end

    parts.append(text[last_end:])
    return "".join(parts)


def render_content(text: str, url_template: str = KICK_EMOTE_URL) -> str:
    """Escape then substitute emotes."""
    return substitute_emotes(escape(text), url_template)


def render_event(event: ChatEvent, url_template: str = KICK_EMOTE_URL) -> RenderedMessage:
    """Turn a validated ChatEvent into a RenderedMessage."""
    display_name = event.username or UNKNOWN_USER
    return RenderedMessage(
        display_name=display_name,
        color=color_for(display_name),
        html_content=render_content(event.content, url_template),
    )


def normalize_channel_name(raw: str) -> str:
    """Strip a leading @ and surrounding whitespace from a channel name.

    Raises:
        InvalidInputError: If nothing is left.
    """
    name = (raw or "").strip()
    if name.startswith("@"):
        name = name[1:].strip()
    if not name:
        raise InvalidInputError(f"Invalid channel name: {raw!r}")
    return name
