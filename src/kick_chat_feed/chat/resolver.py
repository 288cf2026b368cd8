"""Channel name to chatroom id lookup against the Kick API."""

import asyncio
import json
import logging
from urllib.parse import quote

import aiohttp

from ..core.settings import KickSettings
from .errors import NotFoundError, UnavailableError
from .models import RoomId

logger = logging.getLogger(__name__)


async def safe_json(resp: aiohttp.ClientResponse) -> dict | list | None:
    """Parse JSON from a response, returning None on error.

    Kick (and CORS relays) sometimes answer with an HTML error page.
    """
    try:
        return await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to parse JSON response: {e}")
        return None


class RoomResolver:
    """Resolves a Kick channel slug to its chatroom id.

    One request per call, no retries. The aiohttp session is created lazily
    on the running loop; call close() when done.
    """

    def __init__(
        self,
        settings: KickSettings | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.settings = settings or KickSettings()
        self._session = session

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": self.settings.user_agent,
        }

    def lookup_url(self, channel_name: str) -> str:
        """Build the channel-info URL, routed through the relay if one is set."""
        url = f"{self.settings.api_base}/channels/{quote(channel_name, safe='')}"
        if self.settings.proxy_url:
            return f"{self.settings.proxy_url}{quote(url, safe='')}"
        return url

    async def resolve(self, channel_name: str) -> RoomId:
        """Look up the chatroom id for a channel.

        Args:
            channel_name: Normalized channel slug (no @, not empty).

        Returns:
            The chatroom id.

        Raises:
            NotFoundError: No such channel, or the payload has no chatroom id.
            UnavailableError: The request failed or returned a bad status.
        """
        url = self.lookup_url(channel_name)
        logger.debug(f"Kick: resolving chatroom for {channel_name} via {url}")

        try:
            async with self.session.get(url, headers=self._get_headers()) as resp:
                if resp.status == 404:
                    raise NotFoundError("Channel not found")
                if resp.status != 200:
                    body = await resp.text(errors="replace")
                    logger.warning(
                        f"Kick: lookup for {channel_name} failed: "
                        f"HTTP {resp.status}, body: {body[:200]}"
                    )
                    raise UnavailableError(f"API unavailable (HTTP {resp.status})")
                data = await safe_json(resp)
        except (NotFoundError, UnavailableError):
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Kick: network error resolving {channel_name}: {e}")
            raise UnavailableError(f"Network error: {e}") from e
        except Exception as e:
            logger.exception(f"Kick: unexpected error resolving {channel_name}")
            raise UnavailableError(f"Lookup failed: {e}") from e

        chatroom = data.get("chatroom") if isinstance(data, dict) else None
        room_id = chatroom.get("id") if isinstance(chatroom, dict) else None
        if not room_id:
            raise NotFoundError("No chatroom found for this channel")

        logger.info(f"Kick: {channel_name} -> chatroom {room_id}")
        return room_id
