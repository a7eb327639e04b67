"""MPD protocol data types.

This module defines frozen dataclasses for decoded MPD responses.
Every value is an immutable snapshot taken from a single response.
"""

from dataclasses import dataclass
from enum import Enum


class PlayerState(Enum):
    """Playback state reported by the ``state:`` field."""

    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"


class SingleMode(Enum):
    """Value of the ``single:`` field.

    MPD reports ``0`` (off), ``1`` (on) or ``oneshot`` (stop after the
    current track once, then switch back to off).
    """

    OFF = "0"
    ON = "1"
    ONESHOT = "oneshot"


@dataclass(frozen=True, slots=True)
class MpdSong:
    """The currently loaded song.

    Attributes:
        pos: Position of the song in the queue.
        elapsed: Elapsed playback time, rounded to whole seconds.
    """

    pos: int
    elapsed: int


@dataclass(frozen=True)
class MpdStatus:
    """MPD player status.

    Attributes:
        repeat: Repeat mode enabled.
        random: Random/shuffle mode enabled.
        single: Single mode (off, on or one-shot).
        consume: Consume mode (remove tracks after playing).
        queue_len: Number of tracks in the queue.
        state: Player state.
        song: Current song, or None if no song is loaded.
    """

    repeat: bool
    random: bool
    single: SingleMode
    consume: bool
    queue_len: int
    state: PlayerState = PlayerState.STOP
    song: MpdSong | None = None

    @property
    def is_playing(self) -> bool:
        """Return True if currently playing."""
        return self.state is PlayerState.PLAY

    @property
    def is_paused(self) -> bool:
        """Return True if paused."""
        return self.state is PlayerState.PAUSE

    @property
    def is_stopped(self) -> bool:
        """Return True if stopped."""
        return self.state is PlayerState.STOP

    @property
    def elapsed(self) -> int:
        """Return elapsed seconds of the current song, 0 if none is loaded."""
        return self.song.elapsed if self.song else 0


@dataclass(frozen=True)
class MpdTrack:
    """One entry of the play queue.

    Attributes:
        file: Path to the audio file in MPD's music directory.
        artist: Artist name from tags.
        album: Album name from tags.
        title: Track title from tags.
        time: Track duration in whole seconds (0 if unknown).
    """

    file: str
    artist: str | None = None
    album: str | None = None
    title: str | None = None
    time: int = 0

    @property
    def display_title(self) -> str:
        """Return title for display, with filename fallback."""
        if self.title:
            return self.title
        # Extract filename without path and extension
        name = self.file.rsplit("/", 1)[-1]
        if "." in name:
            name = name.rsplit(".", 1)[0]
        return name

    @property
    def display_artist(self) -> str:
        """Return artist for display, or an empty string."""
        return self.artist or ""


@dataclass(frozen=True, slots=True)
class IdleResult:
    """Which subscribed subsystems changed while idling.

    Attributes:
        status_changed: The ``options`` or ``player`` subsystem changed.
        queue_changed: The ``playlist`` subsystem changed.
    """

    status_changed: bool = False
    queue_changed: bool = False

    @property
    def changed(self) -> bool:
        """Return True if anything relevant changed."""
        return self.status_changed or self.queue_changed
