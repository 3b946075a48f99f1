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
ICY (shoutcast/icecast) "now playing" lookup.

We ask the server for metadata with the `Icy-MetaData: 1` request header. A
server that supports it answers with an `icy-metaint` header and then, after
every `icy-metaint` bytes of audio, sends one length byte followed by
16 * length bytes of text like::

    StreamTitle='Artist - Song';StreamUrl='';
"""

import asyncio
import logging
import re
from typing import Optional
from urllib.parse import urlsplit

logger = logging.getLogger("ICY")

DEFAULT_TIMEOUT = 5.0
USER_AGENT = "TruckerTunes/1.0"
DRAIN_CHUNK_SIZE = 4096

# values may contain quotes, so a value only ends at `'` followed by `;` and
# the next key (or the end of the block)
METADATA_RE = re.compile(r"(\w+)='(.*?)';?(?=\s*\w+='|\s*$)", re.DOTALL)


def parse_icy_metadata(block) -> dict[str, str]:
    """Parse an ICY metadata block (bytes or str) into a dict."""
    if isinstance(block, bytes):
        try:
            block = block.decode("utf-8")
        except UnicodeDecodeError:
            block = block.decode("latin-1")
    block = block.rstrip("\x00").strip()
    return {
        key: value.replace("\\'", "'") for key, value in METADATA_RE.findall(block)
    }


async def fetch_now_playing(
    stream_url: str, timeout: float = DEFAULT_TIMEOUT
) -> Optional[str]:
    """
    Return the current StreamTitle of `stream_url`, or None if it is not
    available for any reason (HTTP error, connection error, no metadata,
    stream ended, timeout). Never raises for network failures.
    """
    try:
        return await asyncio.wait_for(_read_stream_title(stream_url), timeout)
    except asyncio.TimeoutError:
        logger.warning("timeout waiting for metadata from %s", stream_url)
    except Exception as e:
        logger.warning("request error for stream %s: %s", stream_url, e)
    return None


def _build_request(url) -> bytes:
    path = url.path or "/"
    if url.query:
        path = f"{path}?{url.query}"
    host = f"[{url.hostname}]" if ":" in url.hostname else url.hostname
    if url.port is not None:
        host = f"{host}:{url.port}"
    return (
        f"GET {path} HTTP/1.0\r\n"
        f"Host: {host}\r\n"
        f"Icy-MetaData: 1\r\n"
        f"User-Agent: {USER_AGENT}\r\n"
        f"Accept: */*\r\n"
        f"Connection: close\r\n\r\n"
    ).encode("latin-1")


async def _read_response_head(reader: asyncio.StreamReader):
    """Read the status line and headers. Shoutcast v1 answers `ICY 200 OK`."""
    head = await reader.readuntil(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")

    parts = lines[0].split(None, 2)
    if len(parts) < 2 or not (parts[0].startswith("HTTP/") or parts[0] == "ICY"):
        raise ValueError(f"malformed status line: {lines[0]!r}")
    status = int(parts[1])

    headers = {}
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()
    return status, headers


async def _read_stream_title(stream_url: str) -> Optional[str]:
    url = urlsplit(stream_url)
    if url.scheme not in ("http", "https") or not url.hostname:
        raise ValueError(f"unsupported stream url: {stream_url}")

    port = url.port or (443 if url.scheme == "https" else 80)
    logger.debug("fetching ICY metadata for %s", stream_url)
    reader, writer = await asyncio.open_connection(
        url.hostname, port, ssl=True if url.scheme == "https" else None
    )

    try:
        writer.write(_build_request(url))
        await writer.drain()

        status, headers = await _read_response_head(reader)
        if not 200 <= status < 300:
            logger.warning("HTTP error %s for stream: %s", status, stream_url)
            return None

        metaint = int(headers.get("icy-metaint") or 0)
        try:
            if metaint <= 0:
                logger.debug("no icy-metaint from %s, reading until end", stream_url)
                while await reader.read(DRAIN_CHUNK_SIZE):
                    pass
            else:
                while True:
                    await reader.readexactly(metaint)
                    length = (await reader.readexactly(1))[0] * 16
                    if not length:
                        continue
                    metadata = parse_icy_metadata(await reader.readexactly(length))
                    logger.debug("parsed ICY metadata: %s", metadata)
                    title = metadata.get("StreamTitle", "").strip()
                    if title:
                        logger.info("found StreamTitle for %s: %s", stream_url, title)
                        return title
        except asyncio.IncompleteReadError:
            pass

        logger.info("stream ended for %s without a title", stream_url)
        return None
    finally:
        # drop the connection outright, nothing more is read from it
        writer.transport.abort()
