import asyncio
import socket
import time
import unittest
from urllib.parse import urlsplit

from trucker_tunes.icy import _build_request, fetch_now_playing, parse_icy_metadata


def icy_block(text):
    """Encode a metadata block: one length byte, then text padded to 16 bytes."""
    data = text.encode("utf-8")
    length = (len(data) + 15) // 16
    return bytes([length]) + data.ljust(length * 16, b"\x00")


async def wait_for_disconnect(reader):
    try:
        await reader.read()
    except ConnectionError:
        pass


class StreamServer:
    """Local TCP server answering every request with `handler`."""

    def __init__(self, handler):
        self.handler = handler
        self.request = None
        self.disconnected = asyncio.Event()

    async def __aenter__(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        port = self.server.sockets[0].getsockname()[1]
        self.url = f"http://127.0.0.1:{port}/stream"
        return self

    async def __aexit__(self, *exc):
        self.server.close()
        await self.server.wait_closed()

    async def _handle(self, reader, writer):
        try:
            self.request = await reader.readuntil(b"\r\n\r\n")
            await self.handler(reader, writer)
        except ConnectionError:
            pass
        finally:
            self.disconnected.set()
            writer.close()


class TestFetchNowPlaying(unittest.IsolatedAsyncioTestCase):
    async def test_returns_stream_title(self):
        async def handler(reader, writer):
            writer.write(b"ICY 200 OK\r\nicy-metaint: 16\r\n\r\n")
            writer.write(b"A" * 16 + icy_block("StreamTitle='Artist - Song';StreamUrl='';"))
            await writer.drain()
            await wait_for_disconnect(reader)

        async with StreamServer(handler) as server:
            song = await fetch_now_playing(server.url)
            self.assertEqual(song, "Artist - Song")
            self.assertIn(b"Icy-MetaData: 1\r\n", server.request)
            self.assertTrue(server.request.startswith(b"GET /stream HTTP/1.0\r\n"))
            # the connection is dropped as soon as the title is found
            await asyncio.wait_for(server.disconnected.wait(), 1)

    async def test_skips_empty_metadata_blocks(self):
        async def handler(reader, writer):
            writer.write(b"HTTP/1.0 200 OK\r\nContent-Type: audio/mpeg\r\nicy-metaint: 8\r\n\r\n")
            writer.write(b"\xff" * 8 + b"\x00")
            writer.write(b"\xff" * 8 + icy_block("StreamTitle='';"))
            writer.write(b"\xff" * 8 + icy_block("StreamTitle='Guns N' Roses - Don\\'t Cry';"))
            await writer.drain()
            await wait_for_disconnect(reader)

        async with StreamServer(handler) as server:
            song = await fetch_now_playing(server.url)
        self.assertEqual(song, "Guns N' Roses - Don't Cry")

    async def test_http_error_is_unavailable_without_waiting(self):
        async def handler(reader, writer):
            writer.write(b"HTTP/1.1 403 Forbidden\r\nContent-Length: 0\r\n\r\n")
            await writer.drain()
            await wait_for_disconnect(reader)

        async with StreamServer(handler) as server:
            started = time.monotonic()
            song = await fetch_now_playing(server.url, timeout=5)
            elapsed = time.monotonic() - started
        self.assertIsNone(song)
        self.assertLess(elapsed, 1)

    async def test_timeout_when_no_metadata_arrives(self):
        async def handler(reader, writer):
            writer.write(b"ICY 200 OK\r\nicy-metaint: 16000\r\n\r\n")
            writer.write(b"\x00" * 512)
            await writer.drain()
            await wait_for_disconnect(reader)

        async with StreamServer(handler) as server:
            started = time.monotonic()
            song = await fetch_now_playing(server.url, timeout=0.5)
            elapsed = time.monotonic() - started
        self.assertIsNone(song)
        self.assertGreaterEqual(elapsed, 0.45)
        self.assertLess(elapsed, 2)

    async def test_timeout_when_server_sends_no_metaint(self):
        async def handler(reader, writer):
            writer.write(b"HTTP/1.0 200 OK\r\nContent-Type: audio/mpeg\r\n\r\n")
            writer.write(b"\x00" * 512)
            await writer.drain()
            await wait_for_disconnect(reader)

        async with StreamServer(handler) as server:
            started = time.monotonic()
            song = await fetch_now_playing(server.url, timeout=0.5)
            elapsed = time.monotonic() - started
        self.assertIsNone(song)
        self.assertGreaterEqual(elapsed, 0.45)

    async def test_stream_end_without_title(self):
        async def handler(reader, writer):
            writer.write(b"ICY 200 OK\r\nicy-metaint: 16\r\n\r\n")
            writer.write(b"A" * 16 + icy_block("StreamUrl='http://example.com';"))
            writer.write(b"A" * 4)
            await writer.drain()

        async with StreamServer(handler) as server:
            started = time.monotonic()
            song = await fetch_now_playing(server.url, timeout=5)
            elapsed = time.monotonic() - started
        self.assertIsNone(song)
        self.assertLess(elapsed, 1)

    async def test_connection_refused(self):
        with socket.socket() as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        song = await fetch_now_playing(f"http://127.0.0.1:{port}/", timeout=2)
        self.assertIsNone(song)

    async def test_malformed_response(self):
        async def handler(reader, writer):
            writer.write(b"garbage\r\n\r\n")
            await writer.drain()

        async with StreamServer(handler) as server:
            self.assertIsNone(await fetch_now_playing(server.url))

    async def test_unsupported_url(self):
        self.assertIsNone(await fetch_now_playing("ftp://example.com/stream"))
        self.assertIsNone(await fetch_now_playing("not a url"))

    async def test_concurrent_fetches_are_independent(self):
        async def handler(reader, writer):
            writer.write(b"ICY 200 OK\r\nicy-metaint: 4\r\n\r\n")
            writer.write(b"AAAA" + icy_block("StreamTitle='Same Song';"))
            await writer.drain()
            await wait_for_disconnect(reader)

        async with StreamServer(handler) as server:
            results = await asyncio.gather(
                *(fetch_now_playing(server.url) for _ in range(3))
            )
        self.assertEqual(results, ["Same Song"] * 3)


class TestBuildRequest(unittest.TestCase):
    def test_request_headers(self):
        request = _build_request(urlsplit("http://radio.example:8000/live?sid=1")).decode()
        self.assertTrue(request.startswith("GET /live?sid=1 HTTP/1.0\r\n"))
        self.assertIn("Host: radio.example:8000\r\n", request)
        self.assertIn("Icy-MetaData: 1\r\n", request)
        self.assertTrue(request.endswith("\r\n\r\n"))

    def test_ipv6_host_is_bracketed(self):
        request = _build_request(urlsplit("http://[::1]:8000/")).decode()
        self.assertIn("Host: [::1]:8000\r\n", request)
        request = _build_request(urlsplit("http://[::1]/")).decode()
        self.assertIn("Host: [::1]\r\n", request)


class TestParseIcyMetadata(unittest.TestCase):
    def test_pairs(self):
        self.assertEqual(
            parse_icy_metadata("StreamTitle='Artist - Song';StreamUrl='http://x';"),
            {"StreamTitle": "Artist - Song", "StreamUrl": "http://x"},
        )

    def test_nul_padding_and_bytes(self):
        block = b"StreamTitle='Song';\x00\x00\x00\x00"
        self.assertEqual(parse_icy_metadata(block), {"StreamTitle": "Song"})

    def test_quotes_inside_value(self):
        self.assertEqual(
            parse_icy_metadata("StreamTitle='It\\'s Rock 'n' Roll';StreamUrl='';"),
            {"StreamTitle": "It's Rock 'n' Roll", "StreamUrl": ""},
        )

    def test_latin1_fallback(self):
        block = "StreamTitle='Beyoncé';".encode("latin-1")
        self.assertEqual(parse_icy_metadata(block), {"StreamTitle": "Beyoncé"})

    def test_missing_trailing_semicolon(self):
        self.assertEqual(parse_icy_metadata("StreamTitle='Song'"), {"StreamTitle": "Song"})

    def test_empty(self):
        self.assertEqual(parse_icy_metadata(b""), {})


if __name__ == "__main__":
    unittest.main()
