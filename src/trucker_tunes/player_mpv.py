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


from trucker_tunes.config import TruckerTunesConfig
from trucker_tunes.interfaces import RadioPlayer
from trucker_tunes.stations import RadioStation
from python_mpv_jsonipc import MPV
import asyncio
import os
import subprocess
import logging

logger = logging.getLogger('PLAYER')

VOLUME_STEP = 5
IPC_RETRIES = 20
IPC_RETRY_DELAY = 0.2


class MpvPlayer(RadioPlayer):
    def __init__(self, config: TruckerTunesConfig, audio_channels: str = "stereo",
                 socket_path: str = "/tmp/trucker-tunes-mpv.sock", library=None):
        super().__init__(config, library)
        self.audio_channels = audio_channels
        self.socket_path = socket_path
        self.mpv_process = None
        self.mpv_sock = None
        self.mpv_volume = None
        self.mpv_sock_lock = asyncio.Lock()

    @property
    def volume(self):
        return self.mpv_volume

    async def play(self, station: RadioStation):
        """Play a radio station."""

        logger.info("playing station %s (%s)", station.name, station.stream_url)
        try:
            # Stop any existing playback
            await self.stop()
            self.mpv_process = subprocess.Popen(
                [
                    "mpv",
                    station.stream_url,
                    "--no-osc",
                    "--no-osd-bar",
                    "--no-input-default-bindings",
                    "--no-input-terminal",
                    "--no-audio-display",
                    f"--input-ipc-server={self.socket_path}",
                    "--no-video",
                    "--cache=no",
                    "--stream-lavf-o=reconnect_streamed=1",
                    f"--audio-channels={self.audio_channels}",
                ],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            if self.mpv_process.poll() is None:
                logger.info("mpv process started with PID %s", self.mpv_process.pid)
                self.station = station
            else:
                logger.error("failed to start mpv process.")
                self.mpv_process = None
                return
            self.mpv_sock = None
            await self._establish_ipc_socket()
        except Exception as e:
            logger.error("error starting station: %s", e, exc_info=True)

    async def stop(self):
        """Stop playback of the current station."""
        self.station = None
        if self.mpv_sock:
            try:
                self.mpv_sock.stop()
            except Exception as e:
                logger.debug("error stopping mpv IPC: %s", e)
            finally:
                self.mpv_sock = None

        if self.mpv_process:
            try:
                self.mpv_process.terminate()
                if os.path.exists(self.socket_path):
                    os.remove(self.socket_path)
            except Exception as e:
                logger.debug("error terminating mpv: %s", e)
            finally:
                self.mpv_process = None

    async def volume_up(self):
        await self.set_volume((self.mpv_volume or 0) + VOLUME_STEP)

    async def volume_down(self):
        await self.set_volume((self.mpv_volume or 0) - VOLUME_STEP)

    async def set_volume(self, level: int):
        volume = max(0, min(100, int(level)))
        self.mpv_volume = volume

        if self.mpv_sock is None:
            logger.info("mpv not running, volume %s applies to the next station.", volume)
            return

        self.mpv_sock.volume = volume
        logger.debug("Adjusted Volume: %s", volume)

    async def _establish_ipc_socket(self):
        async with self.mpv_sock_lock:
            if self.mpv_sock is not None:
                return self.mpv_sock
            loop = asyncio.get_running_loop()
            for _ in range(IPC_RETRIES):
                try:
                    sock = await loop.run_in_executor(
                        None, lambda: MPV(start_mpv=False, ipc_socket=self.socket_path)
                    )
                except Exception:
                    await asyncio.sleep(IPC_RETRY_DELAY)
                    continue
                self.mpv_sock = sock
                if self.mpv_volume is None:
                    self.mpv_volume = int(sock.volume)
                else:
                    sock.volume = self.mpv_volume
                    logger.info("Volume restored to %s", self.mpv_volume)
                return sock
            logger.error("failed to establish mpv IPC socket, volume controls disabled.")
            return None
