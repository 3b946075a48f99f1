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

import random
from typing import Iterable, Optional

from trucker_tunes.stations import Game, RadioStation


class StationCatalog:
    """Searchable view over the ETS2 and ATS station lists."""

    def __init__(self, stations_by_game: dict[Game, list[RadioStation]], rng=None):
        self._stations = {game: list(stations_by_game.get(game, [])) for game in Game}
        self._rng = rng or random.Random()

    def stations(self, game: Optional[Game] = None) -> list[RadioStation]:
        """Get a game's stations, or all of them (ETS2 first) without a game."""
        if game is not None:
            return list(self._stations[Game(game)])
        return [s for g in Game for s in self._stations[g]]

    def find(self, stream_url: str) -> Optional[tuple[RadioStation, Game]]:
        """Find a station by its stream url, the first match wins."""
        for game in Game:
            for station in self._stations[game]:
                if station.stream_url == stream_url:
                    return station, game
        return None

    def search(
        self,
        query: str = "",
        game: Optional[Game] = None,
        favorites: Optional[Iterable[str]] = None,
    ) -> list[RadioStation]:
        """Case-insensitive match on name or genre, optionally favorites only."""
        needle = (query or "").strip().lower()
        wanted = set(favorites) if favorites is not None else None
        return [
            s
            for s in self.stations(game)
            if (wanted is None or s.stream_url in wanted)
            and (needle in s.name.lower() or needle in s.genre.lower())
        ]

    def step(
        self,
        current: Optional[RadioStation],
        offset: int,
        game: Optional[Game] = None,
    ) -> Optional[RadioStation]:
        """Previous/next station, wrapping around the list `current` is in."""
        stations = self.stations(game)
        if not stations:
            return None
        if current is None or current not in stations:
            return stations[0] if offset >= 0 else stations[-1]
        index = stations.index(current)
        return stations[(index + offset) % len(stations)]

    def random(self, game: Optional[Game] = None) -> Optional[RadioStation]:
        stations = self.stations(game)
        if not stations:
            return None
        return self._rng.choice(stations)
