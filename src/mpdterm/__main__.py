"""Main entry point for the mpdterm command line client."""

import argparse
import asyncio
import logging
import signal
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from mpdterm.api.mpd import (
    IdleResult,
    MpdClient,
    MpdClientError,
    MpdStatus,
    MpdTrack,
    SingleMode,
)
from mpdterm.core.config import ConfigManager
from mpdterm.core.mpd_monitor import MpdMonitor

logger = logging.getLogger(__name__)


def format_duration(seconds: int) -> str:
    """Format a second count as "m:ss", or "h:mm:ss" past an hour."""
    minutes, secs = divmod(max(0, seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_status(status: MpdStatus) -> str:
    """Render a status as a short multi-line summary."""
    single = {SingleMode.OFF: "off", SingleMode.ON: "on", SingleMode.ONESHOT: "oneshot"}
    lines = [f"state: {status.state.value}"]
    if status.song is not None:
        lines.append(f"song: #{status.song.pos + 1} at {format_duration(status.song.elapsed)}")
    lines.append(
        f"repeat: {'on' if status.repeat else 'off'}  "
        f"random: {'on' if status.random else 'off'}  "
        f"single: {single[status.single]}  "
        f"consume: {'on' if status.consume else 'off'}"
    )
    lines.append(f"queue: {status.queue_len} tracks")
    return "\n".join(lines)


def format_track(pos: int, track: MpdTrack, current: bool = False) -> str:
    """Render one queue entry on a single line."""
    marker = ">" if current else " "
    name = track.display_title
    if track.artist:
        name = f"{track.artist} - {name}"
    return f"{marker}{pos + 1:4d}  {name}  [{format_duration(track.time)}]"


def _build_parser(config: ConfigManager) -> argparse.ArgumentParser:
    host, port, _ = config.resolve_mpd_address()

    parser = argparse.ArgumentParser(
        prog="mpdterm",
        description="mpdterm - Music Player Daemon client",
    )
    parser.add_argument(
        "--host", default=host, help=f"server hostname, IP or socket path (default: {host})",
    )
    parser.add_argument(
        "--port", type=int, default=port, help=f"TCP port (default: {port})",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="increase log verbosity",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="show player status")
    sub.add_parser("queue", help="list the play queue")
    play = sub.add_parser("play", help="play the track at a queue position (1-based)")
    play.add_argument("position", type=int)
    cmd = sub.add_parser("cmd", help="send a raw protocol command")
    cmd.add_argument("line", nargs="+")
    sub.add_parser("idle", help="wait for one status or queue change")
    sub.add_parser("watch", help="follow status and queue changes until interrupted")
    return parser


def _log_level(config: ConfigManager, verbose: int) -> int:
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return getattr(logging, config.get_log_level())


async def _run_once(args: argparse.Namespace, password: str) -> None:
    async with MpdClient(args.host, args.port, password) as client:
        if args.command == "status":
            print(format_status(await client.status()))
        elif args.command == "queue":
            status = await client.status()
            current = status.song.pos if status.song else -1
            for pos, track in enumerate(await client.queue()):
                print(format_track(pos, track, pos == current))
        elif args.command == "play":
            await client.play(args.position - 1)
        elif args.command == "cmd":
            await client.command(" ".join(args.line))
        elif args.command == "idle":
            print(_format_idle(await client.idle()))


def _format_idle(changes: IdleResult) -> str:
    changed = []
    if changes.status_changed:
        changed.append("status")
    if changes.queue_changed:
        changed.append("queue")
    return "changed: " + (", ".join(changed) if changed else "nothing")


def _watch(args: argparse.Namespace, password: str, reconnect_delay: float) -> int:
    app = QCoreApplication(sys.argv[:1])
    monitor = MpdMonitor(args.host, args.port, password, reconnect_delay=reconnect_delay)

    def on_status(status: object) -> None:
        if isinstance(status, MpdStatus):
            print(format_status(status), flush=True)

    def on_queue(queue: object) -> None:
        if isinstance(queue, list):
            print(f"queue: {len(queue)} tracks", flush=True)

    def on_tick(elapsed: int) -> None:
        print(f"\relapsed: {format_duration(elapsed)}", end="", flush=True)

    def on_connection(connected: bool) -> None:
        logger.info("MPD %s", "connected" if connected else "disconnected")

    def on_error(message: str) -> None:
        logger.error("MPD error: %s", message)

    monitor.status_changed.connect(on_status)
    monitor.queue_changed.connect(on_queue)
    monitor.tick.connect(on_tick)
    monitor.connection_changed.connect(on_connection)
    monitor.error_occurred.connect(on_error)

    # Let the Python interpreter run periodically so Ctrl-C is noticed
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    interrupt_timer = QTimer()
    interrupt_timer.start(200)
    interrupt_timer.timeout.connect(lambda: None)

    monitor.start()
    exit_code = app.exec()
    monitor.stop()
    print()
    return exit_code


def main(argv: list[str] | None = None) -> int:
    """Run the mpdterm command line client.

    Returns:
        Exit code (0 for success).
    """
    config = ConfigManager()
    parser = _build_parser(config)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=_log_level(config, args.verbose),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    _, _, password = config.resolve_mpd_address()

    if args.command == "watch":
        return _watch(args, password, float(config.get_reconnect_delay()))

    try:
        asyncio.run(_run_once(args, password))
    except MpdClientError as e:
        logger.debug("Command failed", exc_info=True)
        notes = getattr(e, "__notes__", [])
        context = f"{notes[-1]}: " if notes else ""
        print(f"mpdterm: {context}{e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
