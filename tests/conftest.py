"""Test fixtures for mpdterm tests."""

import asyncio
import os
from collections.abc import Callable

import pytest

# Qt must not look for a display in CI
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtCore import QCoreApplication  # noqa: E402

GREETING = b"OK MPD 0.23.5\n"

STATUS_RESPONSE = (
    b"volume: 75\n"
    b"repeat: 1\n"
    b"random: 0\n"
    b"single: oneshot\n"
    b"consume: 0\n"
    b"playlist: 12\n"
    b"playlistlength: 3\n"
    b"mixrampdb: 0.000000\n"
    b"state: play\n"
    b"song: 1\n"
    b"songid: 2\n"
    b"time: 13:240\n"
    b"elapsed: 12.6\n"
    b"bitrate: 320\n"
    b"duration: 240.000\n"
    b"audio: 44100:24:2\n"
    b"OK\n"
)

QUEUE_RESPONSE = (
    b"file: a.mp3\n"
    b"Artist: X\n"
    b"Time: 120\n"
    b"Pos: 0\n"
    b"Id: 1\n"
    b"file: b.mp3\n"
    b"Title: Y\n"
    b"Pos: 1\n"
    b"Id: 2\n"
    b"OK\n"
)


class MockStreamReader:
    """Mock asyncio StreamReader for testing.

    With ``block_at_end`` set, reads wait for more data from ``feed``
    instead of reporting end of stream, like an idle server would.
    """

    def __init__(self, responses: list[bytes], block_at_end: bool = False) -> None:
        self._responses = list(responses)
        self._index = 0
        self._buffer = b""
        self._block_at_end = block_at_end
        self._more = asyncio.Event()

    def feed(self, data: bytes) -> None:
        """Make more server output available."""
        self._responses.append(data)
        self._more.set()

    async def _fill(self) -> bool:
        while self._index >= len(self._responses):
            if not self._block_at_end:
                return False
            self._more.clear()
            await self._more.wait()
        self._buffer += self._responses[self._index]
        self._index += 1
        return True

    async def readline(self) -> bytes:
        """Read a line from mock data."""
        while b"\n" not in self._buffer:
            if not await self._fill():
                line, self._buffer = self._buffer, b""
                return line

        line, self._buffer = self._buffer.split(b"\n", 1)
        return line + b"\n"

    async def readexactly(self, n: int) -> bytes:
        """Read exactly n bytes."""
        while len(self._buffer) < n:
            if not await self._fill():
                partial, self._buffer = self._buffer, b""
                raise asyncio.IncompleteReadError(partial, n)

        data = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return data


class MockStreamWriter:
    """Mock asyncio StreamWriter for testing."""

    def __init__(self, on_write: Callable[[bytes], None] | None = None) -> None:
        self.data: list[bytes] = []
        self.on_write = on_write
        self._closed = False

    def write(self, data: bytes) -> None:
        """Record written data."""
        self.data.append(data)
        if self.on_write:
            self.on_write(data)

    async def drain(self) -> None:
        """Mock drain."""

    def close(self) -> None:
        """Mark as closed."""
        self._closed = True

    async def wait_closed(self) -> None:
        """Mock wait_closed."""

    def is_closing(self) -> bool:
        """Check if closing."""
        return self._closed


@pytest.fixture
def mock_connection():
    """Create mock connection for testing."""

    def _mock_connection(responses: list[bytes], block_at_end: bool = False):
        reader = MockStreamReader(responses, block_at_end=block_at_end)
        writer = MockStreamWriter()
        return reader, writer

    return _mock_connection


@pytest.fixture
def qapp() -> QCoreApplication:
    """Create a Qt application for testing."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


@pytest.fixture
def status_response() -> bytes:
    """Return a complete status response from a playing server."""
    return STATUS_RESPONSE


@pytest.fixture
def queue_response() -> bytes:
    """Return a two-track playlistinfo response."""
    return QUEUE_RESPONSE
