"""Internet radio player for the ETS2 and ATS station lists."""

from trucker_tunes.icy import fetch_now_playing, parse_icy_metadata
from trucker_tunes.stations import Game, RadioStation, parse_station_list

__all__ = [
    "Game",
    "RadioStation",
    "fetch_now_playing",
    "parse_icy_metadata",
    "parse_station_list",
]
