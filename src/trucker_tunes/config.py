import logging
import os
import time
import urllib.request
from dataclasses import dataclass, field
from importlib import resources
from typing import Optional

from trucker_tunes.exceptions import ConfigError, StationLoadError
from trucker_tunes.stations import Game, RadioStation, parse_station_list

logger = logging.getLogger("CONFIG")

DEFAULT_DATA_DIR = os.path.join(
    os.path.expanduser("~"), ".local", "share", "trucker-tunes"
)
BUNDLED_STATIONS = {
    Game.ETS2: "ets2_live_streams.sii",
    Game.ATS: "ats_live_streams.sii",
}


@dataclass
class TruckerTunesConfig:
    stations: dict[Game, list[RadioStation]] = field(default_factory=dict)
    station_sources: dict[Game, str] = field(default_factory=dict)
    host: str = "localhost"
    port: int = 1980
    poll_interval: float = 30.0
    icy_timeout: float = 5.0
    data_dir: str = DEFAULT_DATA_DIR

    @property
    def library_path(self) -> str:
        return os.path.join(self.data_dir, "library.json")


def bundled_station_file(game: Game) -> str:
    return str(resources.files("trucker_tunes") / "data" / BUNDLED_STATIONS[game])


def fetch_text_url(url, timeout=12, retries=3):
    for attempt in range(retries):
        try:
            req = urllib.request.Request(url, headers={"Accept": "text/plain, */*"})
            with urllib.request.urlopen(req, timeout=timeout) as response:
                if response.status == 200:
                    return response.read().decode("utf-8", errors="replace")
                else:
                    logger.warning(
                        "Failed to fetch stations: %s from %s", response.status, url
                    )
        except Exception as e:
            logger.warning("Attempt %s failed for %s: %s", attempt + 1, url, e)
        if attempt + 1 < retries:
            logger.info("Retrying in %s seconds...", 2**attempt)
            time.sleep(2**attempt)
    return None


def load_station_document(source: str) -> str:
    """Read a station-list document from a local path or an http(s) URL."""
    if source.startswith(("http://", "https://")):
        document = fetch_text_url(source)
        if document is None:
            raise StationLoadError(f"Failed fetching stations from {source}")
        return document

    try:
        with open(source, "r", encoding="utf-8", errors="replace") as f:
            return f.read()
    except OSError as e:
        raise StationLoadError(f"Failed reading stations from {source}: {e}") from e


def load_stations(sources: dict[Game, str]) -> dict[Game, list[RadioStation]]:
    stations = {}
    for game, source in sources.items():
        try:
            stations[game] = parse_station_list(load_station_document(source), game)
            logger.info("Loaded %d %s stations from %s", len(stations[game]), game.value, source)
        except StationLoadError as e:
            logger.error("%s", e)
            stations[game] = []
    return stations


def _number(name, value, cast):
    try:
        result = cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if result <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return result


def make(
    ets2_stations: Optional[str] = None,
    ats_stations: Optional[str] = None,
    host: str = "localhost",
    port=1980,
    poll_interval=30,
    icy_timeout=5,
    data_dir: Optional[str] = None,
):
    """
    Create a TruckerTunesConfig object with the provided parameters.
    Station sources default to the lists bundled with the package.
    """
    sources = {
        Game.ETS2: ets2_stations or bundled_station_file(Game.ETS2),
        Game.ATS: ats_stations or bundled_station_file(Game.ATS),
    }
    for game, source in sources.items():
        logger.info(f"Using {game.value} stations: {source}")

    stations = load_stations(sources)
    if not any(stations.values()):
        raise ConfigError(
            "No stations loaded, check TRUCKER_TUNES_ETS2_STATIONS and TRUCKER_TUNES_ATS_STATIONS."
        )

    return TruckerTunesConfig(
        stations=stations,
        station_sources=sources,
        host=host,
        port=_number("TRUCKER_TUNES_PORT", port, int),
        poll_interval=_number("TRUCKER_TUNES_POLL_INTERVAL", poll_interval, float),
        icy_timeout=_number("TRUCKER_TUNES_ICY_TIMEOUT", icy_timeout, float),
        data_dir=data_dir or DEFAULT_DATA_DIR,
    )
