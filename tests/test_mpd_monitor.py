"""Tests for the MPD status/queue monitor."""

import asyncio
import time

import pytest
from PySide6.QtCore import QCoreApplication

from mpdterm.api.mpd import MpdCommandError, MpdConnectionError, MpdError
from mpdterm.api.mpd.types import (
    IdleResult,
    MpdSong,
    MpdStatus,
    MpdTrack,
    PlayerState,
    SingleMode,
)
from mpdterm.core import mpd_monitor
from mpdterm.core.mpd_monitor import (
    _STOP,
    DEFAULT_RECONNECT_DELAY,
    MpdMonitor,
)


def _status(state: PlayerState = PlayerState.PLAY, elapsed: int = 10) -> MpdStatus:
    return MpdStatus(
        repeat=False,
        random=False,
        single=SingleMode.OFF,
        consume=False,
        queue_len=2,
        state=state,
        song=MpdSong(pos=0, elapsed=elapsed),
    )


QUEUE = [MpdTrack(file="a.mp3", title="A"), MpdTrack(file="b.mp3", title="B")]


class FakeClient:
    """Stand-in for MpdClient recording the requests made."""

    def __init__(self, idle_results: list[IdleResult] | None = None) -> None:
        self.calls: list[str] = []
        self.status_value = _status()
        self.queue_value = QUEUE
        self.idle_results = list(idle_results or [])
        self.idle_cancelled = False

    async def status(self) -> MpdStatus:
        self.calls.append("status")
        return self.status_value

    async def queue(self) -> list[MpdTrack]:
        self.calls.append("queue")
        return self.queue_value

    async def idle(self) -> IdleResult:
        self.calls.append("idle")
        if self.idle_results:
            return self.idle_results.pop(0)
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.idle_cancelled = True
            raise
        raise AssertionError("unreachable")

    async def command(self, line: str) -> None:
        self.calls.append(line)
        if line == "bad":
            raise MpdError(5, "bad", "unknown command")
        if "\n" in line:
            raise MpdCommandError(f"command must be a single line: {line!r}")


@pytest.fixture
def monitor(qapp: QCoreApplication) -> MpdMonitor:
    """Create an MpdMonitor for testing."""
    return MpdMonitor("192.168.1.100", port=6600)


class TestMpdMonitorInit:
    """Tests for MpdMonitor initialization."""

    def test_init_defaults(self, qapp: QCoreApplication) -> None:
        monitor = MpdMonitor("localhost")
        assert monitor.host == "localhost"
        assert monitor.port == 6600
        assert monitor._password == ""
        assert monitor._reconnect_delay == DEFAULT_RECONNECT_DELAY
        assert not monitor._running
        assert monitor.last_status is None
        assert monitor.last_queue is None

    def test_set_host(self, monitor: MpdMonitor) -> None:
        monitor.set_host("/run/mpd/socket")
        assert monitor.host == "/run/mpd/socket"
        assert monitor.port == 6600

    def test_send_command_when_stopped(self, monitor: MpdMonitor) -> None:
        """Test that commands are dropped while not running."""
        monitor.send_command("next")
        assert not monitor._submit("next")


class TestMpdMonitorChangeDetection:
    """Tests for status and queue change detection."""

    def test_first_status_emits(self, monitor: MpdMonitor, qtbot) -> None:
        status = _status()
        with qtbot.waitSignal(monitor.status_changed, timeout=1000) as blocker:
            assert monitor._emit_if_status_changed(status)
        assert blocker.args == [status]
        assert monitor.last_status == status

    def test_same_status_does_not_emit(self, monitor: MpdMonitor) -> None:
        monitor._last_status = _status()
        assert not monitor._emit_if_status_changed(_status())

    def test_different_status_emits(self, monitor: MpdMonitor) -> None:
        monitor._last_status = _status(PlayerState.PLAY)
        assert monitor._emit_if_status_changed(_status(PlayerState.PAUSE))

    def test_queue_change(self, monitor: MpdMonitor) -> None:
        emitted: list[object] = []
        monitor.queue_changed.connect(emitted.append)

        assert monitor._emit_if_queue_changed(QUEUE)
        assert not monitor._emit_if_queue_changed(list(QUEUE))
        assert monitor._emit_if_queue_changed(QUEUE[:1])
        assert emitted == [QUEUE, QUEUE[:1]]


class TestMpdMonitorElapsed:
    """Tests for local elapsed time estimation."""

    def test_no_status(self, monitor: MpdMonitor) -> None:
        assert monitor.estimated_elapsed() == 0

    def test_playing_advances(self, monitor: MpdMonitor) -> None:
        monitor._last_status = _status(PlayerState.PLAY, elapsed=10)
        monitor._status_time = time.monotonic() - 3.2
        assert monitor.estimated_elapsed() == 13

    def test_paused_stays(self, monitor: MpdMonitor) -> None:
        monitor._last_status = _status(PlayerState.PAUSE, elapsed=10)
        monitor._status_time = time.monotonic() - 30
        assert monitor.estimated_elapsed() == 10


class TestMpdMonitorEvents:
    """Tests for racing idle against commands and ticks."""

    @pytest.mark.asyncio
    async def test_idle_result(self, monitor: MpdMonitor) -> None:
        monitor._commands = asyncio.Queue()
        client = FakeClient([IdleResult(status_changed=True)])

        changes, command = await monitor._wait_for_event(client)  # type: ignore[arg-type]

        assert changes == IdleResult(status_changed=True)
        assert command is None
        assert monitor._commands.empty()

    @pytest.mark.asyncio
    async def test_command_cancels_idle(self, monitor: MpdMonitor) -> None:
        """Test that a queued command interrupts the pending idle."""
        monitor._commands = asyncio.Queue()
        monitor._commands.put_nowait("next")
        client = FakeClient()

        changes, command = await monitor._wait_for_event(client)  # type: ignore[arg-type]

        assert changes is None
        assert command == "next"
        assert client.idle_cancelled

    @pytest.mark.asyncio
    async def test_ticks_while_playing(self, monitor: MpdMonitor, monkeypatch) -> None:
        monkeypatch.setattr(mpd_monitor, "TICK_INTERVAL", 0.01)
        monitor._commands = asyncio.Queue()
        monitor._last_status = _status(PlayerState.PLAY, elapsed=5)
        monitor._status_time = time.monotonic()
        ticks: list[int] = []
        monitor.tick.connect(ticks.append)

        asyncio.get_running_loop().call_later(0.1, monitor._commands.put_nowait, _STOP)
        changes, command = await monitor._wait_for_event(FakeClient())  # type: ignore[arg-type]

        assert command is _STOP
        assert changes is None
        assert ticks
        assert all(t >= 5 for t in ticks)

    @pytest.mark.asyncio
    async def test_no_ticks_when_stopped(self, monitor: MpdMonitor, monkeypatch) -> None:
        monkeypatch.setattr(mpd_monitor, "TICK_INTERVAL", 0.01)
        monitor._commands = asyncio.Queue()
        monitor._last_status = _status(PlayerState.STOP)
        ticks: list[int] = []
        monitor.tick.connect(ticks.append)

        asyncio.get_running_loop().call_later(0.1, monitor._commands.put_nowait, _STOP)
        await monitor._wait_for_event(FakeClient())  # type: ignore[arg-type]

        assert ticks == []

    @pytest.mark.asyncio
    async def test_session_refreshes_what_changed(self, monitor: MpdMonitor) -> None:
        monitor._running = True
        monitor._commands = asyncio.Queue()
        monitor._commands.put_nowait(_STOP)
        client = FakeClient([IdleResult(queue_changed=True)])
        statuses: list[object] = []
        monitor.status_changed.connect(statuses.append)

        await monitor._session(client)  # type: ignore[arg-type]

        assert client.calls == ["status", "queue", "idle", "queue"]
        assert statuses == [client.status_value]
        assert monitor.last_queue == QUEUE

    @pytest.mark.asyncio
    async def test_session_runs_commands(self, monitor: MpdMonitor) -> None:
        monitor._running = True
        monitor._commands = asyncio.Queue()
        monitor._commands.put_nowait("next")
        client = FakeClient()

        session = asyncio.create_task(monitor._session(client))  # type: ignore[arg-type]
        for _ in range(50):
            if client.calls.count("idle") == 2:
                break
            await asyncio.sleep(0)
        monitor._commands.put_nowait(_STOP)
        await session

        assert client.calls == [
            "status",
            "queue",
            "idle",
            "next",
            "status",
            "queue",
            "idle",
        ]

    @pytest.mark.asyncio
    async def test_rejected_command_reports_error(self, monitor: MpdMonitor) -> None:
        errors: list[str] = []
        monitor.error_occurred.connect(errors.append)
        client = FakeClient()

        await monitor._run_command(client, "bad")  # type: ignore[arg-type]

        assert errors == ["MPD error 5 in bad: unknown command"]
        assert client.calls == ["bad", "status", "queue"]

    @pytest.mark.asyncio
    async def test_multiline_command_reports_error(self, monitor: MpdMonitor) -> None:
        errors: list[str] = []
        monitor.error_occurred.connect(errors.append)
        client = FakeClient()

        await monitor._run_command(client, "stop\nplay 1")  # type: ignore[arg-type]

        assert len(errors) == 1
        assert "single line" in errors[0]
        assert client.calls == ["stop\nplay 1", "status", "queue"]


class TestMpdMonitorReconnect:
    """Tests for the connect / reconnect loop."""

    @pytest.mark.asyncio
    async def test_reconnects_after_connection_failure(
        self, qapp: QCoreApplication, monkeypatch
    ) -> None:
        """Test that a failed connect is reported and then retried."""
        monitor = MpdMonitor("localhost", reconnect_delay=0.0)
        client = FakeClient()
        attempts: list[tuple[str, int, str]] = []

        class FlakyConnection:
            def __init__(self, host: str, port: int, password: str) -> None:
                attempts.append((host, port, password))

            async def __aenter__(self) -> FakeClient:
                if len(attempts) == 1:
                    raise MpdConnectionError("Failed to connect to localhost:6600: refused")
                return client

            async def __aexit__(self, *_: object) -> None:
                pass

        async def status_then_stop() -> MpdStatus:
            monitor._running = False
            client.calls.append("status")
            return client.status_value

        monkeypatch.setattr(mpd_monitor, "MpdClient", FlakyConnection)
        monkeypatch.setattr(client, "status", status_then_stop)
        connected: list[bool] = []
        errors: list[str] = []
        monitor.connection_changed.connect(connected.append)
        monitor.error_occurred.connect(errors.append)

        monitor._running = True
        await monitor._monitor_loop()

        assert attempts == [("localhost", 6600, ""), ("localhost", 6600, "")]
        assert connected == [False, True]
        assert errors == ["Failed to connect to localhost:6600: refused"]
        assert client.calls == ["status", "queue"]
        assert monitor.last_status == client.status_value
