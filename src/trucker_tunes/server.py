# This file is part of the trucker-tunes project.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <http://www.gnu.org/licenses/>.

"""
Browser front end: a WebSocket endpoint for controlling the player plus a few
plain HTTP routes served from the same port.

    GET /healthz
    GET /api/get-song?url=<stream url>
    GET /api/stations?game=ETS2&q=<query>
"""

import json
import logging
from dataclasses import asdict
from http import HTTPStatus
from typing import Optional
from urllib.parse import parse_qs, urlsplit

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve

from trucker_tunes.icy import fetch_now_playing
from trucker_tunes.interfaces import RadioClient, RadioPlayer
from trucker_tunes.stations import Game

logger = logging.getLogger("WEB")


def json_response(connection: ServerConnection, status: HTTPStatus, payload):
    response = connection.respond(status, json.dumps(payload))
    del response.headers["Content-Type"]
    response.headers["Content-Type"] = "application/json"
    return response


class WebSocketClient(RadioClient):
    """A single browser connection."""

    def __init__(self, player: RadioPlayer, websocket: ServerConnection):
        super().__init__(player)
        self.websocket = websocket

    async def run(self):
        try:
            async for msg in self.websocket:
                await self.handle_message(msg)
        except websockets.exceptions.ConnectionClosedError:
            # Suppress expected disconnect errors
            pass

    async def _send(self, message):
        await self.websocket.send(message)

    async def close(self):
        await self.websocket.close()

    def __repr__(self):
        return f"<WebSocketClient {self.websocket.remote_address}>"


class WebServer:
    def __init__(self, player: RadioPlayer, host: str = "localhost", port: int = 1980):
        self.player = player
        self.host = host
        self.port = port
        self.server: Optional[Server] = None

    async def start(self) -> Server:
        # Suppress websocket healthcheck, connection logs.
        logging.getLogger("websockets.server").setLevel(logging.WARNING)

        self.server = await serve(
            self.handle_connection,
            self.host,
            self.port,
            process_request=self.process_request,
        )
        host, port = self.server.sockets[0].getsockname()[:2]
        self.port = port
        logger.info("Listening on %s:%s", host, port)
        return self.server

    async def run(self):
        server = await self.start()
        async with server:
            await server.serve_forever()

    async def close(self):
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

    async def handle_connection(self, websocket: ServerConnection):
        client = WebSocketClient(self.player, websocket)
        self.player.register_client(client)
        logger.info("client connected: %s", websocket.remote_address)

        try:
            await self.player.notify("client_count")
            for event in ("station_playing", "now_playing", "favorites"):
                await client.broadcast(event, limit_to_self=True)
            await client.run()
        finally:
            self.player.unregister_client(client)
            await self.player.notify("client_count")
            logger.info("client disconnected: %s", websocket.remote_address)

    async def process_request(
        self,
        connection: ServerConnection,
        request: websockets.http11.Request,
    ) -> None | websockets.http11.Response:
        url = urlsplit(request.path)
        params = parse_qs(url.query)

        if url.path == "/healthz":
            return connection.respond(HTTPStatus.OK, "OK\n")

        if url.path == "/api/get-song":
            stream_url = params.get("url", [""])[0]
            if not stream_url:
                return json_response(
                    connection, HTTPStatus.BAD_REQUEST, {"error": "Missing URL parameter"}
                )
            song = await fetch_now_playing(stream_url, timeout=self.player.config.icy_timeout)
            return json_response(connection, HTTPStatus.OK, {"song": song})

        if url.path == "/api/stations":
            game = params.get("game", [""])[0]
            try:
                game = Game(game.upper()) if game else None
            except ValueError:
                return json_response(
                    connection, HTTPStatus.BAD_REQUEST, {"error": f"Unknown game: {game}"}
                )
            stations = self.player.catalog.search(params.get("q", [""])[0], game)
            return json_response(
                connection, HTTPStatus.OK, [asdict(s) for s in stations]
            )

        # Require a WebSocket upgrade to proceed with handshake
        if not (
            request.headers.get("Upgrade", "").lower() == "websocket"
            and "upgrade" in request.headers.get("Connection", "").lower()
        ):
            return connection.respond(
                HTTPStatus.UPGRADE_REQUIRED,
                "WebSocket upgrade required for this endpoint.\n",
            )

        return None
