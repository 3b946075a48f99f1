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
Favorite stations and saved songs, persisted to a JSON file.
"""

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import quote

from trucker_tunes.stations import RadioStation

logger = logging.getLogger("LIBRARY")

SEARCH_URL = "https://www.youtube.com/results?search_query={}"


@dataclass
class SavedSong:
    id: int
    title: str
    station_name: str
    saved_at: int
    stream_url: str
    artist: Optional[str] = None


def split_song(text: str) -> tuple[Optional[str], str]:
    """Split 'Artist - Title' into (artist, title). No separator, no artist."""
    artist, sep, title = text.partition(" - ")
    if sep and artist.strip() and title.strip():
        return artist.strip(), title.strip()
    return None, text.strip()


def search_url(song: SavedSong) -> str:
    query = f"{song.artist or ''} {song.title}".strip()
    return SEARCH_URL.format(quote(query, safe=""))


class Library:
    def __init__(self, path: str):
        self.path = path
        self.favorites: set[str] = set()
        self.saved_songs: list[SavedSong] = []
        self.load()

    def load(self):
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.favorites = set(data.get("favorites", []))
            self.saved_songs = [SavedSong(**s) for s in data.get("saved_songs", [])]
            logger.info(
                "loaded %d favorites and %d saved songs",
                len(self.favorites),
                len(self.saved_songs),
            )
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("ignoring unreadable library %s: %s", self.path, e)
            self.favorites = set()
            self.saved_songs = []

    def _write(self, favorites: set[str], saved_songs: list[SavedSong]):
        """Atomically write the given state. Nothing is left behind on failure."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        data = {
            "favorites": sorted(favorites),
            "saved_songs": [asdict(s) for s in saved_songs],
        }
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def _commit(self, favorites: set[str], saved_songs: list[SavedSong]):
        # memory only changes once the file has been written
        self._write(favorites, saved_songs)
        self.favorites = favorites
        self.saved_songs = saved_songs

    def is_favorite(self, station: RadioStation) -> bool:
        return station.stream_url in self.favorites

    def toggle_favorite(self, station: RadioStation) -> bool:
        """Flip a station's favorite status. Returns the new status."""
        favorite = station.stream_url not in self.favorites
        if favorite:
            favorites = self.favorites | {station.stream_url}
        else:
            favorites = self.favorites - {station.stream_url}
        self._commit(favorites, self.saved_songs)
        logger.info(
            "%s %s favorites", station.name, "added to" if favorite else "removed from"
        )
        return favorite

    def save_song(self, song_text: str, station: RadioStation) -> SavedSong:
        """
        Save the song currently playing on `station`, newest first. Saving the
        same song from the same station twice in a row returns the first save.
        """
        artist, title = split_song(song_text)
        if self.saved_songs:
            newest = self.saved_songs[0]
            if (
                newest.stream_url == station.stream_url
                and newest.title == title
                and newest.artist == artist
            ):
                return newest

        now = int(time.time() * 1000)
        song_id = max(now, self.saved_songs[0].id + 1) if self.saved_songs else now
        song = SavedSong(
            id=song_id,
            title=title,
            artist=artist,
            station_name=station.name,
            saved_at=now,
            stream_url=station.stream_url,
        )
        self._commit(self.favorites, [song] + self.saved_songs)
        logger.info("saved song: %s", song_text)
        return song

    def delete_song(self, song_id: int) -> bool:
        remaining = [s for s in self.saved_songs if s.id != song_id]
        if len(remaining) == len(self.saved_songs):
            return False
        self._commit(self.favorites, remaining)
        return True
