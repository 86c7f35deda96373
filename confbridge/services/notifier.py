"""Line notifier: pushes the line roster and keep-alives to operator consoles.

Every connected WebSocket is kept in a registry keyed by channel id, and
broadcasts go to all of them. Delivery is best-effort: a channel whose send
fails is dropped and the client has to reconnect. Nothing is buffered for
clients that are not connected.
"""

import asyncio
import logging
import uuid
from collections.abc import Iterable

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

KEEPALIVE_MESSAGE = "KeepAlive"


def format_roster(line_dns: Iterable[str]) -> str:
    """``["5016", "5017"]`` → ``"Shared Lines: #5016#5017"``."""
    return "Shared Lines: " + "".join(f"#{dn}" for dn in line_dns)


class LineNotifier:
    """Registry of connected WebSocket channels.

    Usage::

        notifier = LineNotifier(line_dns=["5016", "5017"])
        channel_id = await notifier.register(websocket)   # sends the roster
        await notifier.broadcast("KeepAlive")
        notifier.unregister(channel_id)
    """

    def __init__(self, line_dns: Iterable[str]) -> None:
        self._line_dns = list(line_dns)
        self._channels: dict[str, WebSocket] = {}

    @property
    def client_count(self) -> int:
        return len(self._channels)

    @property
    def roster(self) -> str:
        return format_roster(self._line_dns)

    async def register(self, websocket: WebSocket) -> str:
        """Add an accepted WebSocket to the registry and send it the line roster."""
        channel_id = uuid.uuid4().hex
        self._channels[channel_id] = websocket
        host = websocket.client.host if websocket.client else "unknown"
        logger.info("WebSocket connected with host %s (channel=%s, clients=%d)", host, channel_id, self.client_count)
        await self._send(channel_id, websocket, self.roster)
        return channel_id

    def unregister(self, channel_id: str) -> None:
        if self._channels.pop(channel_id, None) is not None:
            logger.info("WebSocket disconnected (channel=%s, clients=%d)", channel_id, self.client_count)

    async def broadcast(self, text: str) -> int:
        """Send ``text`` to every channel. Returns the number of successful sends."""
        sent = 0
        for channel_id, websocket in list(self._channels.items()):
            if await self._send(channel_id, websocket, text):
                sent += 1
        return sent

    async def keepalive_loop(self, interval: float) -> None:
        """Background loop that broadcasts a keep-alive every ``interval`` seconds."""
        logger.info("Keep-alive loop started (interval: %.1fs)", interval)
        while True:
            await asyncio.sleep(interval)
            logger.debug("Trying to send keep alive to %d client(s)", self.client_count)
            try:
                sent = await self.broadcast(KEEPALIVE_MESSAGE)
            except Exception:
                logger.exception("Error in keep-alive loop")
                continue
            if sent:
                logger.debug("Keep alive sent to %d client(s)", sent)

    async def _send(self, channel_id: str, websocket: WebSocket, text: str) -> bool:
        try:
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.send_text(text)
                return True
        except Exception as exc:
            logger.warning("Failed to send to channel %s: %s", channel_id, exc)
        self.unregister(channel_id)
        return False
