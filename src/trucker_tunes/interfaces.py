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

import abc
import json
import logging
from dataclasses import asdict
from typing import Optional, TypedDict

from trucker_tunes.catalog import StationCatalog
from trucker_tunes.config import TruckerTunesConfig
from trucker_tunes.library import Library, search_url
from trucker_tunes.now_playing import NowPlayingPoller
from trucker_tunes.stations import Game, RadioStation

logger = logging.getLogger(__name__)


class TruckerTunesEvent(TypedDict, total=False):
    event: str
    data: Optional[
        object
    ]  # Any JSON serializable data, including strings, numbers, lists, or dictionaries


def station_dict(station: RadioStation, game: Optional[Game] = None) -> dict:
    data = asdict(station)
    if game is not None:
        data["game"] = game.value
    return data


class RadioPlayer(abc.ABC):
    """
    Interface for Trucker Tunes player implementations.

    Owns the playback state (station, game, now playing) and the registered
    clients. Subclasses only have to drive the audio.
    """

    def __init__(self, config: TruckerTunesConfig, library: Optional[Library] = None):
        self._station: Optional[RadioStation] = None
        self._game: Optional[Game] = None
        self._config: TruckerTunesConfig = config
        self._clients: list[RadioClient] = []
        self.catalog = StationCatalog(config.stations)
        self.library = library or Library(config.library_path)
        self.now_playing = NowPlayingPoller(
            interval=config.poll_interval,
            timeout=config.icy_timeout,
            on_change=self._handle_now_playing,
        )

    @property
    def config(self) -> TruckerTunesConfig:
        """Get the player configuration."""
        return self._config

    @property
    def station(self) -> Optional[RadioStation]:
        """Get or set the currently playing station."""
        return self._station

    @station.setter
    def station(self, value: Optional[RadioStation]):
        self._station = value

    @property
    def game(self) -> Optional[Game]:
        """The game whose list the current station was picked from."""
        return self._game

    @game.setter
    def game(self, value: Optional[Game]):
        self._game = value

    @property
    def clients(self):
        """Get the list of connected clients (read-only)."""
        return self._clients

    def register_client(self, client):
        """Register a client with this player."""
        self._clients.append(client)

    def unregister_client(self, client):
        if client in self._clients:
            self._clients.remove(client)

    async def tune(self, station: Optional[RadioStation], game: Optional[Game] = None):
        """Switch to `station`, or stop when it is None, and tell every client."""
        if station is None:
            self.now_playing.stop()
            await self.stop()
            self.game = None
        else:
            if game is None:
                found = self.catalog.find(station.stream_url)
                game = found[1] if found else None
            self.now_playing.stop()
            await self.play(station)
            if self.station:
                self.game = game
                self.now_playing.start(station)
            else:
                self.game = None
        await self.notify("station_playing")
        await self.notify("now_playing")

    def event_data(self, event: str):
        """Current data for events that describe player state."""
        if event == "station_playing":
            return station_dict(self.station, self.game) if self.station else None
        elif event == "now_playing":
            return self.now_playing.snapshot()
        elif event == "favorites":
            return sorted(self.library.favorites)
        elif event == "saved_songs":
            return [
                dict(asdict(song), search_url=search_url(song))
                for song in self.library.saved_songs
            ]
        elif event == "volume":
            return self.volume
        elif event == "client_count":
            return len(self.clients)
        return None

    def make_message(self, event: str, data=None) -> str:
        if data is None:
            data = self.event_data(event)
        return json.dumps({"event": event, "data": data})

    async def notify(self, event: str, data=None, clients=None):
        """Send an event to `clients`, or to every registered client."""
        message = self.make_message(event, data)
        for client in list(self.clients if clients is None else clients):
            try:
                await client._send(message)
            except Exception as e:
                logger.error("Broadcast error for %s: %s", client, e)

    async def _handle_now_playing(self):
        await self.notify("now_playing")

    @property
    @abc.abstractmethod
    def volume(self) -> Optional[int]:
        """Current volume (0-100), None when unknown."""

    @abc.abstractmethod
    async def play(self, station: RadioStation):
        """Play a radio station."""

    @abc.abstractmethod
    async def stop(self):
        """Stop playback of the current station."""

    @abc.abstractmethod
    async def volume_up(self):
        """Increase the volume."""

    @abc.abstractmethod
    async def volume_down(self):
        """Decrease the volume."""

    @abc.abstractmethod
    async def set_volume(self, level: int):
        """Set the volume to an absolute level."""


class RadioClient(abc.ABC):
    """
    Interface for Trucker Tunes clients (e.g. a browser WebSocket connection).
    """

    def __init__(self, player: RadioPlayer):
        self._player = player
        self._event_handlers = {}
        self.register_event("volume", self._handle_volume)
        self.register_event("station_request", self._handle_station_request)
        self.register_event("station_next", self._handle_station_next)
        self.register_event("station_prev", self._handle_station_prev)
        self.register_event("station_random", self._handle_station_random)
        self.register_event("station_list", self._handle_station_list)
        self.register_event("favorite_toggle", self._handle_favorite_toggle)
        self.register_event("song_save", self._handle_song_save)
        self.register_event("song_delete", self._handle_song_delete)
        self.register_event("saved_songs", self._handle_saved_songs)
        # Ignored events
        for ignored in ("station_playing", "now_playing", "client_count", "favorites"):
            self.register_event(ignored, self._handle_ignored)

    @property
    def player(self) -> RadioPlayer:
        """Get the player instance."""
        return self._player

    def register_event(self, event_name: str, handler):
        """Register or override a handler for a specific event."""
        self._event_handlers[event_name] = handler

    async def broadcast(self, event, data=None, limit_to_self=False):
        """Broadcast an event to clients registered with the player."""
        await self.player.notify(event, data, clients=[self] if limit_to_self else None)

    async def handle_message(self, message: str):
        """Handle incoming messages."""
        try:
            event = json.loads(message)
            await self.handle_event(event)
        except (json.JSONDecodeError, ValueError):
            logger.warning("Invalid message received: %s", message)
        except Exception:
            logger.error("Error handling message: %s", message, exc_info=True)

    async def handle_event(self, event: TruckerTunesEvent):
        """Dispatch event to registered handler, fallback to unknown."""
        if not (isinstance(event, dict) and "event" in event):
            raise ValueError("Invalid event structure")
        event_name = event.get("event")
        handler = self._event_handlers.get(event_name, self._handle_unknown)
        await handler(event)

    async def _handle_volume(self, event):
        data = event.get("data")
        if data == "up":
            await self.player.volume_up()
        elif data == "down":
            await self.player.volume_down()
        else:
            await self.player.set_volume(int(data))
        await self.broadcast("volume")

    async def _handle_station_request(self, event):
        data = event.get("data")
        if data:
            found = self.player.catalog.find(data)
            if found:
                await self.player.tune(*found)
            else:
                logger.warning("Station '%s' not found in station lists.", data)
                await self.broadcast("station_playing", limit_to_self=True)
        else:
            await self.player.tune(None)

    async def _step(self, offset):
        station = self.player.catalog.step(self.player.station, offset, self.player.game)
        if station:
            await self.player.tune(station, self.player.game)

    async def _handle_station_next(self, event):
        await self._step(1)

    async def _handle_station_prev(self, event):
        await self._step(-1)

    async def _handle_station_random(self, event):
        game = event.get("data")
        station = self.player.catalog.random(Game(game) if game else None)
        if station:
            await self.player.tune(station)

    async def _handle_station_list(self, event):
        data = event.get("data") or {}
        game = Game(data["game"]) if data.get("game") else None
        favorites = self.player.library.favorites if data.get("favorites") else None
        stations = self.player.catalog.search(data.get("query", ""), game, favorites)
        result = []
        for station in stations:
            item = station_dict(station)
            item["favorite"] = self.player.library.is_favorite(station)
            result.append(item)
        await self.broadcast("station_list", data=result, limit_to_self=True)

    async def _handle_favorite_toggle(self, event):
        found = self.player.catalog.find(event.get("data") or "")
        if not found:
            logger.warning("cannot favorite unknown station: %s", event.get("data"))
            return
        self.player.library.toggle_favorite(found[0])
        await self.broadcast("favorites")

    async def _handle_song_save(self, event):
        song = self.player.now_playing.song
        if not (song and self.player.station):
            logger.warning("no song to save")
            return
        self.player.library.save_song(song, self.player.station)
        await self.broadcast("saved_songs")

    async def _handle_song_delete(self, event):
        if self.player.library.delete_song(int(event.get("data"))):
            await self.broadcast("saved_songs")

    async def _handle_saved_songs(self, event):
        await self.broadcast("saved_songs", limit_to_self=True)

    async def _handle_ignored(self, event):
        pass  # Ignore these events

    async def _handle_unknown(self, event):
        logger.warning("%s: unknown event: %s", self.__class__.__name__, event["event"])

    @abc.abstractmethod
    async def run(self):
        """Listen for messages until the connection goes away."""

    @abc.abstractmethod
    async def _send(self, message: str):
        """Send a message to this client."""

    @abc.abstractmethod
    async def close(self):
        """Close the client connection."""
