"""aiohttp WebSocket transport

Adapts an aiohttp WebSocket (server-side WebSocketResponse or
client-side ClientWebSocketResponse) to the Transport interface so a
frame living in another process can talk to the coordinator.

Dependency: aiohttp
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from .exceptions import TransportClosedError
from .transport import Sender, Transport


class WebSocketTransport(Transport):
    """Transport over one WebSocket connection.

    Usage:
        transport = WebSocketTransport(ws, sender=Sender(tab_id=1))
        channel = Channel(transport)
        await transport.run()   # pumps inbound messages until close
    """

    def __init__(self, ws, sender: Optional[Sender] = None):
        super().__init__(sender)
        self._ws = ws
        self._closed_locally = False

    def post_message(self, message: Dict[str, Any]) -> None:
        if self._closed or self._ws.closed:
            raise TransportClosedError("websocket is closed")
        # Serialize eagerly so bad payloads fail at the call site.
        text = json.dumps(message)
        task = asyncio.ensure_future(self._ws.send_str(text))
        task.add_done_callback(self._log_send_error)

    @staticmethod
    def _log_send_error(task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logging.warning(f"WebSocket send failed: {error}")

    async def run(self) -> None:
        """Dispatch inbound messages until the socket closes."""
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logging.warning("WebSocket: invalid JSON frame dropped")
                        continue
                    self._dispatch(data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logging.error(f"WebSocket error: {self._ws.exception()}")
        finally:
            was_closed = self._closed
            self._closed = True
            if not was_closed and not self._closed_locally:
                self._fire_disconnect()

    def disconnect(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closed_locally = True
        if not self._ws.closed:
            asyncio.ensure_future(self._ws.close())


async def connect_frame(
    session: aiohttp.ClientSession,
    url: str,
    tab_id: int,
    is_top: bool,
    frame_url: str = "",
) -> WebSocketTransport:
    """Open the frame side of a coordinator connection.

    The caller must schedule transport.run() to start receiving.
    """
    params = {"tab": str(tab_id), "top": "1" if is_top else "0", "url": frame_url}
    ws = await session.ws_connect(url, params=params)
    logging.info(f"Frame connected to coordinator at {url} (tab={tab_id}, top={is_top})")
    return WebSocketTransport(ws, sender=Sender(tab_id=tab_id, is_top=False, url=url))
