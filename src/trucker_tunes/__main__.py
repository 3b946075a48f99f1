#!/usr/bin/env python3

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
import os
import sys

import trucker_tunes.config as config
from trucker_tunes.exceptions import ConfigError
from trucker_tunes.player_mpv import MpvPlayer
from trucker_tunes.server import WebServer

logger = logging.getLogger(__name__)


async def cleanup(player, server):
    logger.info("Cleaning up before exit...")
    player.now_playing.stop()
    await player.stop()
    for client in list(player.clients):
        try:
            await client.close()
        except Exception as e:
            logger.error("Error closing client %s: %s", client.__class__.__name__, e)
    await server.close()


async def main(player, server):
    """Runs the main event loop for the trucker-tunes player."""
    try:
        await server.run()

    except asyncio.CancelledError:
        logger.info("exiting...")
        await cleanup(player, server)
        raise
    except Exception as e:
        logger.critical("Unexpected error in main: %s", e, exc_info=True)
        await cleanup(player, server)
        raise


def run():
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)-8s - %(name)-12s - %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        # Load configuration
        player_config = config.make(
            ets2_stations=os.getenv("TRUCKER_TUNES_ETS2_STATIONS", None),
            ats_stations=os.getenv("TRUCKER_TUNES_ATS_STATIONS", None),
            host=os.getenv("TRUCKER_TUNES_HOST", "localhost"),
            port=os.getenv("TRUCKER_TUNES_PORT", 1980),
            poll_interval=os.getenv("TRUCKER_TUNES_POLL_INTERVAL", 30),
            icy_timeout=os.getenv("TRUCKER_TUNES_ICY_TIMEOUT", 5),
            data_dir=os.getenv("TRUCKER_TUNES_DATA_DIR", None),
        )

        player = MpvPlayer(
            player_config,
            audio_channels=os.getenv("TRUCKER_TUNES_AUDIO_CHANNELS", "stereo"),
            socket_path=os.getenv(
                "TRUCKER_TUNES_MPV_SOCKET_PATH", "/tmp/trucker-tunes-mpv.sock"
            ),
        )
        server = WebServer(player, host=player_config.host, port=player_config.port)

        # Run the main event loop
        asyncio.run(main(player, server))

    except ConfigError as e:
        logger.critical("Configuration error: %s", e)
        sys.exit(1)
    except (KeyboardInterrupt, EOFError):
        # KeyboardInterrupt handles SIGINT (Ctrl+C) and SIGTERM
        logger.info("Application terminated gracefully.")
    except Exception as e:
        logger.critical("Unexpected error: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
