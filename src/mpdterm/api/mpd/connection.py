"""Line-framed stream connection to an MPD server.

MPD listens on TCP (default port 6600) and, on most installs, on a local
unix socket. Both transports speak the same protocol, so both factories
hand their streams to the same handshake and line reader.
"""

import asyncio
import logging
from pathlib import Path
from typing import Self

from mpdterm.api.mpd.protocol import (
    GREETING_PREFIX,
    MpdCommandError,
    MpdConnectionError,
    MpdHandshakeError,
)

logger = logging.getLogger(__name__)


class MpdConnection:
    """An open, handshaken duplex stream to MPD.

    Owned by exactly one client. Reads are line buffered by the
    underlying StreamReader; writes are one command line at a time.

    Example:
        connection = await MpdConnection.open_tcp("localhost", 6600)
        await connection.write_line("status")
        line = await connection.read_line()
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Wrap an already opened stream pair.

        Args:
            reader: Stream to read server lines from.
            writer: Stream to write command lines to.
        """
        self._reader: asyncio.StreamReader | None = reader
        self._writer: asyncio.StreamWriter | None = writer
        self._version = ""

    @classmethod
    async def open_tcp(cls, host: str, port: int) -> Self:
        """Connect over TCP and perform the handshake.

        Raises:
            MpdConnectionError: If the connection fails.
            MpdHandshakeError: If the server greeting is wrong.
        """
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as e:
            raise MpdConnectionError(f"Failed to connect to {host}:{port}: {e}") from e
        connection = cls(reader, writer)
        await connection.handshake()
        return connection

    @classmethod
    async def open_unix(cls, path: str | Path) -> Self:
        """Connect over a local unix socket and perform the handshake.

        Raises:
            MpdConnectionError: If the connection fails.
            MpdHandshakeError: If the server greeting is wrong.
        """
        try:
            reader, writer = await asyncio.open_unix_connection(str(path))
        except OSError as e:
            raise MpdConnectionError(f"Failed to connect to {path}: {e}") from e
        connection = cls(reader, writer)
        await connection.handshake()
        return connection

    @property
    def version(self) -> str:
        """Return the protocol version announced in the greeting."""
        return self._version

    @property
    def is_open(self) -> bool:
        """Return True while the stream can still be used."""
        return self._writer is not None and not self._writer.is_closing()

    async def handshake(self) -> None:
        """Consume the greeting line.

        The greeting is "OK MPD <version>\\n". Exactly that one line is
        consumed; the next byte read belongs to the first response.

        Raises:
            MpdHandshakeError: If the first 7 bytes are not "OK MPD ", or the
                stream ends before the greeting line does.
            MpdConnectionError: If the stream fails while reading.
        """
        reader = self._require_reader()
        try:
            prefix = await reader.readexactly(len(GREETING_PREFIX))
        except asyncio.IncompleteReadError as e:
            self.close()
            raise MpdHandshakeError("server did not greet with success") from e
        except OSError as e:
            self.close()
            raise MpdConnectionError(f"Failed to read greeting: {e}") from e

        if prefix != GREETING_PREFIX:
            self.close()
            raise MpdHandshakeError("server did not greet with success")

        rest = await self.read_line()
        if rest is None:
            raise MpdHandshakeError("server did not greet with success")
        self._version = rest
        logger.debug("MPD greeting received, protocol version %s", self._version)

    async def read_line(self) -> str | None:
        """Read one line without its terminator.

        Returns:
            The decoded line, or None once the server closed the stream.

        Raises:
            MpdConnectionError: If not connected or the read fails.
        """
        reader = self._require_reader()
        try:
            data = await reader.readline()
        except (OSError, ValueError) as e:
            # ValueError: line longer than the reader's buffer limit
            self.close()
            raise MpdConnectionError(f"Failed to read from MPD: {e}") from e

        if not data:
            logger.info("MPD closed the connection")
            self.close()
            return None
        return data.decode("utf-8", errors="replace").rstrip("\n")

    async def write_line(self, line: str) -> None:
        """Write one command line followed by a newline.

        Raises:
            MpdConnectionError: If not connected or the write fails.
            MpdCommandError: If line contains a line break.
        """
        if "\n" in line or "\r" in line:
            raise MpdCommandError(f"command must be a single line: {line!r}")
        if not self.is_open or self._writer is None:
            raise MpdConnectionError("Not connected")
        try:
            self._writer.write(f"{line}\n".encode())
            await self._writer.drain()
        except OSError as e:
            self.close()
            raise MpdConnectionError(f"Failed to write to MPD: {e}") from e

    def close(self) -> None:
        """Close the stream. Safe to call more than once."""
        if self._writer is not None:
            try:
                self._writer.close()
            except OSError as e:
                logger.debug("Expected error during MPD close: %s", e)
        self._writer = None
        self._reader = None

    async def aclose(self) -> None:
        """Close the stream and wait for the transport to shut down."""
        writer = self._writer
        self.close()
        if writer is None:
            return
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug("Expected error during MPD disconnect: %s", e)

    def _require_reader(self) -> asyncio.StreamReader:
        if self._reader is None:
            raise MpdConnectionError("Not connected")
        return self._reader
