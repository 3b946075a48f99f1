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
Station records and the parser for the simulators' live_streams.sii format.

Each station is one line of the form::

    stream_data[9]: "https://radio.truckers.fm/|TruckersFM|Sim radio|EN|320|1"

i.e. stream url, name, genre, language, bitrate and a favorite flag which we
do not use. Anything else in the document is ignored.
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("STATIONS")

STREAM_DATA_RE = re.compile(r'^\s*stream_data\[\d+\]:\s*"([^"]*)"\s*$')
FIELD_COUNT = 6


class Game(str, enum.Enum):
    ETS2 = "ETS2"
    ATS = "ATS"


@dataclass(frozen=True)
class RadioStation:
    name: str
    stream_url: str
    genre: str
    language: str
    bitrate: str


def parse_station_line(line: str) -> Optional[RadioStation]:
    """Parse a single stream_data line. Returns None if it is not one."""
    match = STREAM_DATA_RE.match(line)
    if not match:
        return None

    fields = match.group(1).split("|")
    if len(fields) != FIELD_COUNT:
        return None

    stream_url, name, genre, language, bitrate = (f.strip() for f in fields[:5])
    if not all((stream_url, name, genre, language, bitrate)):
        return None

    return RadioStation(
        name=name,
        stream_url=stream_url,
        genre=genre,
        language=language,
        bitrate=bitrate,
    )


def parse_station_list(document: str, game: Optional[Game] = None) -> list[RadioStation]:
    """
    Parse a station-list document into stations, in document order.
    Malformed lines are skipped, duplicates are kept.
    """
    stations = []
    for line in document.splitlines():
        station = parse_station_line(line)
        if station is not None:
            stations.append(station)

    logger.debug(
        "parsed %d stations for %s", len(stations), game.value if game else "document"
    )
    return stations
