"""MPD monitor that keeps player status and queue up to date.

This module provides a Qt-integrated monitor that waits on MPD's idle
command in a background thread and emits signals when the status or the
queue changes. While the player is playing it also emits a once-per-second
tick so a front end can advance the elapsed time without asking MPD.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import TYPE_CHECKING, TypeVar

from PySide6.QtCore import QObject, Signal

from mpdterm.api.mpd import (
    DEFAULT_PORT,
    IdleResult,
    MpdClient,
    MpdClientError,
    MpdCommandError,
    MpdConnectionError,
    MpdError,
)
from mpdterm.api.mpd.protocol import format_command

if TYPE_CHECKING:
    from mpdterm.api.mpd.types import MpdStatus, MpdTrack

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 5.0  # seconds
TICK_INTERVAL = 1.0  # seconds

# Queued in place of a command line to end the session
_STOP = object()

_EVERYTHING = IdleResult(status_changed=True, queue_changed=True)

T = TypeVar("T")


async def _settle(task: asyncio.Task[T]) -> T | None:
    """Cancel task unless it already finished; return its result or None."""
    if not task.done():
        task.cancel()
    try:
        return await task
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            raise
        return None


class MpdMonitor(QObject):
    """Monitor MPD for status and queue changes.

    Runs an asyncio event loop in a background thread. The loop races
    three event sources: MPD's idle notification, commands submitted with
    ``send_command``, and the playback tick. Only one request is ever in
    flight on the connection; a submitted command cancels the pending idle
    first.

    Example:
        monitor = MpdMonitor("localhost")
        monitor.status_changed.connect(lambda s: print(f"State: {s.state}"))
        monitor.queue_changed.connect(lambda q: print(f"{len(q)} tracks"))
        monitor.start()
        monitor.send_command("next")
    """

    # Emitted when the player status changes
    # Parameter: MpdStatus
    status_changed = Signal(object)

    # Emitted when the queue changes
    # Parameter: list[MpdTrack]
    queue_changed = Signal(object)

    # Emitted every second while playing
    # Parameter: int (estimated elapsed seconds of the current song)
    tick = Signal(int)

    # Emitted on connection state change
    # Parameter: bool (True = connected)
    connection_changed = Signal(bool)

    # Emitted on error
    # Parameter: str (error message)
    error_occurred = Signal(str)

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        password: str = "",
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        parent: QObject | None = None,
    ) -> None:
        """Initialize the MPD monitor.

        Args:
            host: MPD server hostname, IP or unix socket path.
            port: MPD server port.
            password: Optional password for authentication.
            reconnect_delay: Seconds to wait before reconnecting.
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self._host = host
        self._port = port
        self._password = password
        self._reconnect_delay = reconnect_delay

        self._running = False
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._commands: asyncio.Queue[object] | None = None

        # State for change detection and elapsed estimation
        self._last_status: MpdStatus | None = None
        self._last_queue: list[MpdTrack] | None = None
        self._status_time = 0.0

    @property
    def host(self) -> str:
        """Return the MPD host."""
        return self._host

    @property
    def port(self) -> int:
        """Return the MPD port."""
        return self._port

    @property
    def last_status(self) -> MpdStatus | None:
        """Return the most recent status, if any."""
        return self._last_status

    @property
    def last_queue(self) -> list[MpdTrack] | None:
        """Return the most recent queue, if any."""
        return self._last_queue

    def set_host(self, host: str, port: int = DEFAULT_PORT) -> None:
        """Update the MPD host.

        Takes effect on the next reconnect.

        Args:
            host: New MPD hostname, IP or unix socket path.
            port: New MPD port.
        """
        self._host = host
        self._port = port

    def start(self) -> None:
        """Start the monitor."""
        if not self._running:
            self._running = True
            self._thread = threading.Thread(target=self._run_loop, daemon=True)
            self._thread.start()
            logger.info("MpdMonitor started for %s:%d", self._host, self._port)

    def stop(self) -> None:
        """Stop the monitor."""
        self._running = False
        self._submit(_STOP)
        if self._thread:
            self._thread.join(timeout=5.0)
            self._thread = None
            logger.info("MpdMonitor stopped")

    def send_command(self, line: str) -> None:
        """Queue a command line for the MPD connection.

        Thread-safe call from main thread. Ignored if not running.

        Args:
            line: Complete command line, e.g. "next" or "pause 1".
        """
        if not self._submit(line):
            logger.debug("MpdMonitor not running, dropping command %r", line)

    def play(self, pos: int) -> None:
        """Queue playback of the track at a queue position."""
        self.send_command(format_command("play", str(pos)))

    def _submit(self, item: object) -> bool:
        loop, commands = self._loop, self._commands
        if loop is None or commands is None or not loop.is_running():
            return False
        loop.call_soon_threadsafe(commands.put_nowait, item)
        return True

    def _run_loop(self) -> None:
        """Background thread: run asyncio event loop."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._monitor_loop())
        finally:
            self._loop = None
            self._commands = None
            loop.close()

    async def _monitor_loop(self) -> None:
        """Async monitor loop: connect, then follow changes until stopped."""
        self._loop = asyncio.get_running_loop()
        self._commands = asyncio.Queue()

        while self._running:
            try:
                async with MpdClient(self._host, self._port, self._password) as client:
                    self.connection_changed.emit(True)
                    await self._session(client)

            except MpdConnectionError as e:
                logger.warning("MPD connection failed: %s", e)
                self.connection_changed.emit(False)
                self.error_occurred.emit(str(e))
                await self._sleep_interruptible(self._reconnect_delay)

            except MpdClientError as e:
                logger.error("MPD protocol error: %s", e)
                self.connection_changed.emit(False)
                self.error_occurred.emit(str(e))
                await self._sleep_interruptible(self._reconnect_delay)

            except Exception as e:  # noqa: BLE001
                logger.exception("Unexpected error in MPD monitor: %s", e)
                self.connection_changed.emit(False)
                self.error_occurred.emit(f"Unexpected error: {e}")
                await self._sleep_interruptible(self._reconnect_delay)

    async def _sleep_interruptible(self, seconds: float) -> None:
        """Sleep in small increments to allow quick shutdown."""
        end_time = time.monotonic() + seconds
        while self._running and time.monotonic() < end_time:
            await asyncio.sleep(0.1)

    async def _session(self, client: MpdClient) -> None:
        """Follow one connection until stopped or the connection fails."""
        await self._refresh(client, _EVERYTHING)

        while self._running:
            changes, command = await self._wait_for_event(client)
            if changes is not None and changes.changed:
                await self._refresh(client, changes)
            if command is _STOP:
                return
            if isinstance(command, str):
                await self._run_command(client, command)

    async def _wait_for_event(self, client: MpdClient) -> tuple[IdleResult | None, object]:
        """Race idle against queued commands, ticking while playing.

        Returns:
            The idle result (None if idle was cancelled) and the queued
            command (None if none arrived).
        """
        assert self._commands is not None
        idle_task = asyncio.create_task(client.idle())
        command_task = asyncio.create_task(self._commands.get())
        pending = {idle_task, command_task}

        while True:
            timeout = TICK_INTERVAL if self._is_playing() else None
            done, _ = await asyncio.wait(pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            if done:
                break
            self.tick.emit(self.estimated_elapsed())

        command = await _settle(command_task)
        # Cancelling idle makes the client send "noidle" and resynchronise
        changes = await _settle(idle_task)
        return changes, command

    async def _run_command(self, client: MpdClient, line: str) -> None:
        """Run a queued command, then refresh everything.

        Changes reported while leaving idle were discarded, so both status
        and queue are fetched again.
        """
        try:
            await client.command(line)
        except (MpdError, MpdCommandError) as e:
            logger.warning("MPD rejected %r: %s", line, e)
            self.error_occurred.emit(str(e))
        await self._refresh(client, _EVERYTHING)

    async def _refresh(self, client: MpdClient, changes: IdleResult) -> None:
        """Fetch whatever changes says is stale."""
        if changes.status_changed:
            status = await client.status()
            if self._emit_if_status_changed(status):
                self._status_time = time.monotonic()
        if changes.queue_changed:
            queue = await client.queue()
            self._emit_if_queue_changed(queue)

    def _is_playing(self) -> bool:
        return self._last_status is not None and self._last_status.is_playing

    def estimated_elapsed(self) -> int:
        """Return elapsed seconds of the current song, advanced by wall time."""
        status = self._last_status
        if status is None or status.song is None:
            return 0
        if not status.is_playing:
            return status.song.elapsed
        return status.song.elapsed + int(time.monotonic() - self._status_time)

    def _emit_if_status_changed(self, status: MpdStatus) -> bool:
        """Emit status_changed if status differs from last."""
        if self._last_status is None or status != self._last_status:
            self._last_status = status
            self.status_changed.emit(status)
            return True
        return False

    def _emit_if_queue_changed(self, queue: list[MpdTrack]) -> bool:
        """Emit queue_changed if queue differs from last."""
        if self._last_queue is None or queue != self._last_queue:
            self._last_queue = queue
            self.queue_changed.emit(queue)
            return True
        return False
