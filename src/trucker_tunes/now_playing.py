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

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from trucker_tunes.icy import DEFAULT_TIMEOUT, fetch_now_playing
from trucker_tunes.stations import RadioStation

logger = logging.getLogger("NOW_PLAYING")

DEFAULT_INTERVAL = 30.0


class NowPlayingPoller:
    """
    Polls the active station's ICY metadata on a fixed interval.

    Only one station is polled at a time and only one fetch is in flight for
    it. Results for a station that is no longer active are dropped.
    """

    def __init__(
        self,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        on_change: Optional[Callable[[], Awaitable[None]]] = None,
        fetch=fetch_now_playing,
    ):
        self.interval = interval
        self.timeout = timeout
        self.on_change = on_change
        self._fetch = fetch
        self._task: Optional[asyncio.Task] = None
        self.station: Optional[RadioStation] = None
        self.song: Optional[str] = None
        self.loading = False
        self.unavailable = False

    def start(self, station: RadioStation):
        """Start polling `station`, replacing whatever was polled before."""
        self.stop()
        self.station = station
        self.loading = True
        self._task = asyncio.create_task(self._poll(station))

    def stop(self):
        if self._task:
            self._task.cancel()
            self._task = None
        self.station = None
        self.song = None
        self.loading = False
        self.unavailable = False

    def snapshot(self) -> dict:
        return {
            "stream_url": self.station.stream_url if self.station else None,
            "song": self.song,
            "loading": self.loading,
            "unavailable": self.unavailable,
        }

    async def _poll(self, station: RadioStation):
        while True:
            song = await self._fetch(station.stream_url, timeout=self.timeout)
            if self.station is not station:
                return

            changed = (
                self.loading
                or song != self.song
                or self.unavailable != (song is None)
            )
            self.song = song
            self.loading = False
            self.unavailable = song is None

            if changed:
                logger.info("now playing on %s: %s", station.name, song or "unavailable")
                await self._notify()
            await asyncio.sleep(self.interval)

    async def _notify(self):
        if not self.on_change:
            return
        try:
            await self.on_change()
        except Exception as e:
            logger.error("now playing callback failed: %s", e, exc_info=True)
