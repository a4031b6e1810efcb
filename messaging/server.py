"""Coordinator server - frames in other processes connect over WebSocket

Routes:
    GET /frames?tab=<id>&top=<0|1>&url=<frame url>   WebSocket, one per frame
    GET /status                                      JSON snapshot of tabs

The server only adapts sockets to transports; everything after the
handshake is the hub's business.

Dependency: aiohttp
"""

import logging
from typing import TYPE_CHECKING, Any, Dict

from aiohttp import web

from .transport import Sender
from .websocket import WebSocketTransport

if TYPE_CHECKING:
    from core.coordinator_hub import CoordinatorHub


class CoordinatorServer:
    """aiohttp front end of a CoordinatorHub.

    Usage:
        server = CoordinatorServer(hub, host="localhost", port=8765)
        server.run()
    """

    def __init__(self, hub: "CoordinatorHub", host: str = "localhost", port: int = 8765):
        self.hub = hub
        self.host = host
        self.port = port
        self.connection_count = 0
        self.logger = logging.getLogger("CoordinatorServer")

    async def frame_handler(self, request: web.Request) -> web.StreamResponse:
        """Adopt one frame connection for its lifetime."""
        try:
            tab_id = int(request.query["tab"])
        except (KeyError, ValueError):
            return web.Response(text="tab query parameter is required", status=400)
        is_top = request.query.get("top", "0") == "1"
        url = request.query.get("url", "")

        ws = web.WebSocketResponse()
        await ws.prepare(request)

        transport = WebSocketTransport(ws, sender=Sender(tab_id=tab_id, is_top=is_top, url=url))
        frame_id = self.hub.connect_frame(transport)
        self.connection_count += 1
        self.logger.info(f"Frame connection #{self.connection_count}: tab {tab_id}, frame {frame_id}")

        try:
            await transport.run()
        finally:
            self.logger.info(f"Frame connection closed: tab {tab_id}, frame {frame_id}")
        return ws

    async def status_handler(self, request: web.Request) -> web.Response:
        return web.json_response(self.get_status())

    def get_status(self) -> Dict[str, Any]:
        return {
            "type": "status",
            "data": {
                "connection_count": self.connection_count,
                "tabs": {
                    str(tab_id): {
                        "mode": ctx.mode.value,
                        "frames": ctx.frame_ids(),
                        "focused_frame": ctx.focused_frame_id,
                    }
                    for tab_id, ctx in self.hub.tabs.items()
                },
                "macro_recording": self.hub.macro.recording,
            },
        }

    async def _on_cleanup(self, app: web.Application) -> None:
        self.hub.shutdown()
        if self.hub.host is not None:
            await self.hub.host.shutdown()

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()

        app.router.add_get('/frames', self.frame_handler)
        app.router.add_get('/status', self.status_handler)
        app.on_cleanup.append(self._on_cleanup)

        return app

    def run(self) -> None:
        """Start the server (blocks until interrupted)."""
        self.logger.info(f"Coordinator listening on ws://{self.host}:{self.port}/frames")
        web.run_app(self.create_app(), host=self.host, port=self.port, print=None)
