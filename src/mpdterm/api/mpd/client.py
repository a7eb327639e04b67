"""Async MPD client.

This module provides an asyncio-based MPD client. The protocol is strictly
half-duplex: one command is written, then its whole response is read before
the next command may be sent. The client does no queuing of its own, so a
caller must await each operation before starting the next one.

Example:
    async with MpdClient("localhost") as client:
        status = await client.status()
        if status.is_playing:
            tracks = await client.queue()
            print(f"Playing: {tracks[status.song.pos].display_title}")
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from pathlib import Path
from typing import Protocol, Self, TypeVar

from mpdterm.api.mpd.connection import MpdConnection
from mpdterm.api.mpd.protocol import (
    IDLE_COMMAND,
    IdleDecoder,
    MpdClientError,
    MpdConnectionError,
    MpdDecodeError,
    MpdIncompleteResponseError,
    QueueDecoder,
    StatusDecoder,
    format_command,
    is_ack,
    is_ok,
    parse_ack,
)
from mpdterm.api.mpd.types import IdleResult, MpdStatus, MpdTrack, SingleMode

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6600

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class _Decoder(Protocol[T_co]):
    def feed(self, line: str) -> None: ...

    def result(self) -> T_co: ...


class MpdClient:
    """Async MPD client.

    Provides typed status, queue and idle queries plus bare commands.

    Attributes:
        host: MPD server hostname or IP, or an absolute unix socket path.
        port: MPD server port (default 6600, unused for unix sockets).
        password: Optional password for authentication.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        password: str = "",
    ) -> None:
        """Initialize MPD client.

        Args:
            host: MPD server hostname or IP. A value starting with "/" is
                treated as the path of a unix socket.
            port: MPD server port.
            password: Optional password for authentication.
        """
        self.host = host
        self.port = port
        self.password = password

        self._connection: MpdConnection | None = None

    @classmethod
    async def open_tcp(cls, host: str, port: int = DEFAULT_PORT, password: str = "") -> Self:
        """Return a client connected over TCP."""
        client = cls(host, port, password)
        await client.connect()
        return client

    @classmethod
    async def open_unix(cls, path: str | Path, password: str = "") -> Self:
        """Return a client connected over a unix socket."""
        client = cls(str(path), password=password)
        await client.connect()
        return client

    @property
    def is_unix_socket(self) -> bool:
        """Return True if host names a unix socket."""
        return self.host.startswith("/")

    @property
    def address(self) -> str:
        """Return the server address for display."""
        if self.is_unix_socket:
            return self.host
        return f"{self.host}:{self.port}"

    @property
    def is_connected(self) -> bool:
        """Return True if connected to MPD."""
        return self._connection is not None and self._connection.is_open

    @property
    def version(self) -> str:
        """Return MPD protocol version from initial handshake."""
        return self._connection.version if self._connection else ""

    async def connect(self) -> None:
        """Connect to MPD server.

        Raises:
            MpdConnectionError: If connection fails.
            MpdHandshakeError: If the server greeting is wrong.
            MpdError: If authentication fails.
        """
        try:
            if self.is_unix_socket:
                self._connection = await MpdConnection.open_unix(self.host)
            else:
                self._connection = await MpdConnection.open_tcp(self.host, self.port)
            logger.info("Connected to MPD %s at %s", self.version, self.address)

            if self.password:
                await self.command(format_command("password", self.password))
        except MpdClientError as e:
            await self.disconnect()
            e.add_note("Failed to connect")
            raise

    async def disconnect(self) -> None:
        """Disconnect from MPD server."""
        if self._connection:
            connection, self._connection = self._connection, None
            await connection.aclose()
            logger.info("Disconnected from MPD")

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        """Async context manager exit."""
        await self.disconnect()

    # -------------------------------------------------------------------------
    # Command/response engine
    # -------------------------------------------------------------------------

    def _require_connection(self) -> MpdConnection:
        if not self.is_connected or self._connection is None:
            raise MpdConnectionError("Not connected")
        return self._connection

    async def _send(self, command: str) -> None:
        logger.debug("MPD command: %s", command)
        await self._require_connection().write_line(command)

    async def _response_lines(self) -> AsyncGenerator[str, None]:
        """Yield payload lines until OK, ACK or end of stream.

        Raises:
            MpdError: If the response is an ACK.
        """
        connection = self._require_connection()
        while True:
            line = await connection.read_line()
            if line is None or is_ok(line):
                return
            if is_ack(line):
                raise parse_ack(line)
            yield line

    async def _drain(self) -> None:
        """Discard the rest of the current response."""
        connection = self._connection
        while connection is not None and connection.is_open:
            line = await connection.read_line()
            if line is None or is_ok(line) or is_ack(line):
                return

    async def _exchange(self, command: str, decoder: _Decoder[T]) -> T:
        """Send command and fold its response through decoder.

        A decode failure still consumes the response up to its sentinel,
        so the connection stays usable for the next command.
        """
        try:
            await self._send(command)
            try:
                async with aclosing(self._response_lines()) as lines:
                    async for line in lines:
                        decoder.feed(line)
            except (MpdDecodeError, MpdIncompleteResponseError):
                await self._drain()
                raise
        except asyncio.CancelledError:
            # Part of the response may still be in flight; framing is lost.
            logger.warning("MPD command %r cancelled, closing connection", command)
            if self._connection:
                self._connection.close()
            raise
        return decoder.result()

    # -------------------------------------------------------------------------
    # Status, queue and idle
    # -------------------------------------------------------------------------

    async def status(self) -> MpdStatus:
        """Get current player status.

        Returns:
            MpdStatus with modes, queue length, state and current song.

        Raises:
            MpdIncompleteResponseError: If a required field is missing.
            MpdDecodeError: If a numeric field is malformed.
        """
        try:
            return await self._exchange("status", StatusDecoder())
        except MpdClientError as e:
            e.add_note("Failed to query status")
            raise

    async def queue(self) -> list[MpdTrack]:
        """Get the tracks of the play queue, in queue order."""
        try:
            return await self._exchange("playlistinfo", QueueDecoder())
        except MpdClientError as e:
            e.add_note("Failed to query queue")
            raise

    async def idle(self) -> IdleResult:
        """Wait until the options, player or playlist subsystem changes.

        Blocks for as long as the server reports nothing; there is no
        timeout. The wait may be cancelled: the client then sends "noidle"
        and consumes the rest of the idle response, so the next command
        starts on a clean line boundary. If that fails the connection is
        closed.

        Returns:
            IdleResult telling whether status and/or queue changed.
        """
        decoder = IdleDecoder()
        try:
            try:
                await self._send(IDLE_COMMAND)
                async with aclosing(self._response_lines()) as lines:
                    async for line in lines:
                        decoder.feed(line)
            except asyncio.CancelledError:
                await self._cancel_idle()
                raise
        except MpdClientError as e:
            e.add_note("Failed to idle")
            raise
        return decoder.result()

    async def _cancel_idle(self) -> None:
        """Leave idle mode after the waiting task was cancelled.

        MPD answers "noidle" with the pending "changed:" lines and "OK". If
        idle had already finished the server ignores "noidle", and the idle's
        own "OK" is the one still unread. Either way exactly one "OK" remains.
        """
        connection = self._connection
        if connection is None or not connection.is_open:
            return
        logger.debug("Cancelling idle with noidle")
        try:
            await connection.write_line("noidle")
            await self._drain()
        except MpdClientError as e:
            logger.warning("Failed to leave idle mode, closing connection: %s", e)
            connection.close()
        except asyncio.CancelledError:
            connection.close()
            raise

    # -------------------------------------------------------------------------
    # Bare commands
    # -------------------------------------------------------------------------

    async def command(self, line: str) -> None:
        """Send a pre-formatted command line and discard its payload.

        Args:
            line: Complete command line without newline.

        Raises:
            MpdError: If the server rejects the command.
            MpdCommandError: If line contains a line break; nothing is sent.
        """
        try:
            await self._exchange(line, _DiscardDecoder())
        except MpdClientError as e:
            e.add_note("Failed to send command")
            raise

    async def play(self, pos: int) -> None:
        """Start playback at a queue position.

        Args:
            pos: Position in the queue.
        """
        await self.command(format_command("play", str(pos)))

    async def pause(self, state: bool | None = None) -> None:
        """Pause or resume playback.

        Args:
            state: True to pause, False to resume, None to toggle.
        """
        if state is None:
            await self.command("pause")
        else:
            await self.command(format_command("pause", "1" if state else "0"))

    async def stop(self) -> None:
        """Stop playback."""
        await self.command("stop")

    async def next(self) -> None:
        """Skip to next track."""
        await self.command("next")

    async def previous(self) -> None:
        """Skip to previous track."""
        await self.command("previous")

    async def seek(self, time: float) -> None:
        """Seek to position in current track.

        Args:
            time: Position in seconds.
        """
        await self.command(format_command("seekcur", str(time)))

    async def set_repeat(self, enabled: bool) -> None:
        """Turn repeat mode on or off.

        Args:
            enabled: True to repeat the queue.
        """
        await self.command(format_command("repeat", "1" if enabled else "0"))

    async def set_random(self, enabled: bool) -> None:
        """Turn random playback on or off.

        Args:
            enabled: True to play the queue in random order.
        """
        await self.command(format_command("random", "1" if enabled else "0"))

    async def set_single(self, mode: SingleMode) -> None:
        """Set single mode.

        Args:
            mode: OFF, ON (stop or repeat after the current song) or ONESHOT.
        """
        await self.command(format_command("single", mode.value))

    async def set_consume(self, enabled: bool) -> None:
        """Turn consume mode on or off.

        Args:
            enabled: True to remove songs from the queue once played.
        """
        await self.command(format_command("consume", "1" if enabled else "0"))

    async def ping(self) -> None:
        """Ping MPD server to check connection."""
        await self.command("ping")


class _DiscardDecoder:
    """Decoder for commands without a structured reply."""

    def feed(self, line: str) -> None:
        logger.debug("Ignoring MPD payload line: %s", line)

    def result(self) -> None:
        return None
