"""MPD protocol parsing utilities.

MPD uses a simple line-based text protocol:
- Commands are sent as plain text lines
- Responses are key-value pairs: "key: value"
- Responses end with "OK" or "ACK [error@index] {command} message"

Each response kind has a decoder that folds lines into an accumulator one at
a time, so a client can decode while it reads. Dispatch is table driven:
exact lines are looked up first, then prefixes in table order.

Reference: https://mpd.readthedocs.io/en/stable/protocol.html
"""

import math
import re
from collections.abc import Callable, Iterable
from typing import Any

from mpdterm.api.mpd.types import (
    IdleResult,
    MpdSong,
    MpdStatus,
    MpdTrack,
    PlayerState,
    SingleMode,
)

GREETING_PREFIX = b"OK MPD "
SUCCESS = "OK"
ERROR_PREFIX = "ACK "

# Subsystems watched by the idle command
IDLE_SUBSYSTEMS = ("options", "player", "playlist")


class MpdClientError(Exception):
    """Base class for all MPD client failures."""


class MpdConnectionError(MpdClientError):
    """Transport failure: connect, read or write error, or closed connection."""


class MpdHandshakeError(MpdConnectionError):
    """Server did not send the expected greeting."""


class MpdDecodeError(MpdClientError, ValueError):
    """A response field could not be parsed."""

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line!r}")


class MpdIncompleteResponseError(MpdClientError):
    """Response ended without all required fields."""


class MpdCommandError(MpdClientError, ValueError):
    """A command line cannot be sent as a single protocol line."""


class MpdError(MpdClientError):
    """MPD protocol error (ACK response)."""

    def __init__(self, code: int, command: str, message: str) -> None:
        self.code = code
        self.command = command
        self.message = message
        super().__init__(f"MPD error {code} in {command}: {message}")


# Pattern for ACK responses: ACK [error@command_listNum] {current_command} message_text
ACK_PATTERN = re.compile(r"ACK \[(\d+)@\d+\] \{(\w*)\} (.+)")


def is_ok(line: str) -> bool:
    """Return True if line is the success sentinel."""
    return line == SUCCESS


def is_ack(line: str) -> bool:
    """Return True if line is an error sentinel."""
    return line.startswith(ERROR_PREFIX)


def parse_ack(line: str) -> MpdError:
    """Build an MpdError from an ACK line.

    Args:
        line: A line starting with "ACK ".

    Returns:
        MpdError with code, command and message. Lines not following the
        usual ACK grammar get code 0 and the whole line as message.
    """
    match = ACK_PATTERN.match(line)
    if match:
        return MpdError(int(match.group(1)), match.group(2), match.group(3))
    return MpdError(0, "", line)


# -----------------------------------------------------------------------------
# Field parsers
# -----------------------------------------------------------------------------


def _parse_uint(value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise ValueError("expected an unsigned integer")
    return int(value)


_SECONDS_PATTERN = re.compile(r"\d+(\.\d*)?([eE][+-]?\d+)?")


def _parse_seconds(value: str) -> int:
    """Parse a fractional second count, rounding half away from zero."""
    if not (value.isascii() and _SECONDS_PATTERN.fullmatch(value)):
        raise ValueError("expected a non-negative number of seconds")
    seconds = float(value)
    if not math.isfinite(seconds) or seconds < 0:
        raise ValueError("expected a non-negative number of seconds")
    return math.floor(seconds + 0.5)


_ExactAction = Callable[[Any], None]
_PrefixAction = Callable[[Any, str], None]


def _assign(field: str, value: object) -> _ExactAction:
    def action(decoder: Any) -> None:
        setattr(decoder, field, value)

    return action


def _store(field: str, parse: Callable[[str], object]) -> _PrefixAction:
    def action(decoder: Any, value: str) -> None:
        setattr(decoder, field, parse(value))

    return action


def _dispatch(
    decoder: object,
    line: str,
    exact: dict[str, _ExactAction],
    prefixes: tuple[tuple[str, _PrefixAction], ...],
) -> None:
    """Apply the first matching action to decoder; unknown lines are ignored."""
    action = exact.get(line)
    if action is not None:
        action(decoder)
        return

    for prefix, prefix_action in prefixes:
        if line.startswith(prefix):
            try:
                prefix_action(decoder, line[len(prefix) :])
            except MpdDecodeError:
                raise
            except ValueError as e:
                raise MpdDecodeError(line, str(e)) from e
            return


# -----------------------------------------------------------------------------
# Decoders
# -----------------------------------------------------------------------------


class StatusDecoder:
    """Accumulate ``status`` response lines into an MpdStatus."""

    def __init__(self) -> None:
        self.repeat: bool | None = None
        self.random: bool | None = None
        self.single: SingleMode | None = None
        self.consume: bool | None = None
        self.queue_len: int | None = None
        self.state = PlayerState.STOP
        self.pos: int | None = None
        self.elapsed: int | None = None

    def feed(self, line: str) -> None:
        """Fold one response line into the accumulator.

        Raises:
            MpdDecodeError: If a numeric field is malformed.
        """
        _dispatch(self, line, _STATUS_EXACT, _STATUS_PREFIXES)

    def result(self) -> MpdStatus:
        """Build the status from everything fed so far.

        Raises:
            MpdIncompleteResponseError: If a required field was never seen.
        """
        if (
            self.repeat is None
            or self.random is None
            or self.single is None
            or self.consume is None
            or self.queue_len is None
        ):
            raise MpdIncompleteResponseError("incomplete status response")

        song = None
        if self.pos is not None and self.elapsed is not None:
            song = MpdSong(pos=self.pos, elapsed=self.elapsed)

        return MpdStatus(
            repeat=self.repeat,
            random=self.random,
            single=self.single,
            consume=self.consume,
            queue_len=self.queue_len,
            state=self.state,
            song=song,
        )


_STATUS_EXACT: dict[str, _ExactAction] = {
    "repeat: 0": _assign("repeat", False),
    "repeat: 1": _assign("repeat", True),
    "random: 0": _assign("random", False),
    "random: 1": _assign("random", True),
    "single: 0": _assign("single", SingleMode.OFF),
    "single: 1": _assign("single", SingleMode.ON),
    "single: oneshot": _assign("single", SingleMode.ONESHOT),
    "consume: 0": _assign("consume", False),
    "consume: 1": _assign("consume", True),
    "state: play": _assign("state", PlayerState.PLAY),
    "state: pause": _assign("state", PlayerState.PAUSE),
}

_STATUS_PREFIXES: tuple[tuple[str, _PrefixAction], ...] = (
    ("playlistlength: ", _store("queue_len", _parse_uint)),
    ("song: ", _store("pos", _parse_uint)),
    ("elapsed: ", _store("elapsed", _parse_seconds)),
)


class QueueDecoder:
    """Accumulate ``playlistinfo`` response lines into a list of tracks.

    Every ``file:`` line starts a new track. All other fields belong to the
    track started by the most recent ``file:`` line.
    """

    def __init__(self) -> None:
        self._tracks: list[MpdTrack] = []
        self._first = True
        self.file: str | None = None
        self.artist: str | None = None
        self.album: str | None = None
        self.title: str | None = None
        self.time = 0

    def _reset(self) -> None:
        self.artist = None
        self.album = None
        self.title = None
        self.time = 0

    def _flush(self) -> None:
        if self.file is None:
            raise MpdIncompleteResponseError("incomplete playlist response")
        self._tracks.append(
            MpdTrack(
                file=self.file,
                artist=self.artist,
                album=self.album,
                title=self.title,
                time=self.time,
            )
        )

    def start_track(self, path: str) -> None:
        """Handle a ``file:`` boundary line.

        Raises:
            MpdIncompleteResponseError: If the previous track has no file.
        """
        if self._first:
            self._first = False
        else:
            self._flush()

        self.file = path or None
        self._reset()

    def feed(self, line: str) -> None:
        """Fold one response line into the accumulator.

        Raises:
            MpdDecodeError: If ``Time:`` is not an unsigned integer.
            MpdIncompleteResponseError: On a boundary without a previous file.
        """
        _dispatch(self, line, {}, _QUEUE_PREFIXES)

    def result(self) -> list[MpdTrack]:
        """Flush the last track and return all tracks in queue order."""
        if not self._first:
            self._flush()
            self._first = True
            self.file = None
        return list(self._tracks)


_QUEUE_PREFIXES: tuple[tuple[str, _PrefixAction], ...] = (
    ("file: ", QueueDecoder.start_track),
    ("Artist: ", _store("artist", str)),
    ("Album: ", _store("album", str)),
    ("Title: ", _store("title", str)),
    ("Time: ", _store("time", _parse_uint)),
)


class IdleDecoder:
    """Accumulate ``idle`` response lines into an IdleResult."""

    def __init__(self) -> None:
        self.status_changed = False
        self.queue_changed = False

    def feed(self, line: str) -> None:
        """Fold one ``changed:`` line; other subsystems are ignored."""
        _dispatch(self, line, _IDLE_EXACT, ())

    def result(self) -> IdleResult:
        """Return which subsystems changed."""
        return IdleResult(
            status_changed=self.status_changed,
            queue_changed=self.queue_changed,
        )


_IDLE_EXACT: dict[str, _ExactAction] = {
    "changed: options": _assign("status_changed", True),
    "changed: player": _assign("status_changed", True),
    "changed: playlist": _assign("queue_changed", True),
}


def _feed_lines(decoder: StatusDecoder | QueueDecoder | IdleDecoder, lines: Iterable[str]) -> None:
    for line in lines:
        if is_ok(line):
            return
        if is_ack(line):
            raise parse_ack(line)
        decoder.feed(line)


def decode_status(lines: Iterable[str]) -> MpdStatus:
    """Decode a complete ``status`` response.

    Args:
        lines: Response lines, optionally ending with OK.

    Returns:
        MpdStatus instance.

    Raises:
        MpdError: If the response is an ACK.
        MpdDecodeError: If a numeric field is malformed.
        MpdIncompleteResponseError: If a required field is missing.
    """
    decoder = StatusDecoder()
    _feed_lines(decoder, lines)
    return decoder.result()


def decode_queue(lines: Iterable[str]) -> list[MpdTrack]:
    """Decode a complete ``playlistinfo`` response into tracks."""
    decoder = QueueDecoder()
    _feed_lines(decoder, lines)
    return decoder.result()


def decode_idle(lines: Iterable[str]) -> IdleResult:
    """Decode a complete ``idle`` response."""
    decoder = IdleDecoder()
    _feed_lines(decoder, lines)
    return decoder.result()


def escape_arg(arg: str) -> str:
    """Escape an argument for MPD command.

    MPD requires arguments with spaces or special chars to be quoted.
    Inside quotes, backslash and double-quote must be escaped.

    Args:
        arg: The argument to escape.

    Returns:
        Escaped argument, quoted if necessary.
    """
    if arg and not any(c in arg for c in ' "\t\n\\'):
        return arg

    escaped = arg.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_command(command: str, *args: str) -> str:
    """Format an MPD command with arguments.

    Args:
        command: The MPD command name.
        *args: Command arguments.

    Returns:
        Formatted command string (without newline).
    """
    if not args:
        return command
    escaped_args = [escape_arg(arg) for arg in args]
    return f"{command} {' '.join(escaped_args)}"


IDLE_COMMAND = format_command("idle", *IDLE_SUBSYSTEMS)
