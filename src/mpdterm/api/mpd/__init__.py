"""MPD client module.

This module provides an async MPD client that decodes player status,
the play queue and idle change notifications into typed values.

Example:
    from mpdterm.api.mpd import MpdClient

    async with MpdClient("localhost") as client:
        status = await client.status()
        tracks = await client.queue()
        changes = await client.idle()
"""

from mpdterm.api.mpd.client import DEFAULT_PORT, MpdClient
from mpdterm.api.mpd.connection import MpdConnection
from mpdterm.api.mpd.protocol import (
    MpdClientError,
    MpdCommandError,
    MpdConnectionError,
    MpdDecodeError,
    MpdError,
    MpdHandshakeError,
    MpdIncompleteResponseError,
)
from mpdterm.api.mpd.types import (
    IdleResult,
    MpdSong,
    MpdStatus,
    MpdTrack,
    PlayerState,
    SingleMode,
)

__all__ = [
    "DEFAULT_PORT",
    "MpdClient",
    "MpdConnection",
    "MpdClientError",
    "MpdCommandError",
    "MpdConnectionError",
    "MpdDecodeError",
    "MpdError",
    "MpdHandshakeError",
    "MpdIncompleteResponseError",
    "IdleResult",
    "MpdSong",
    "MpdStatus",
    "MpdTrack",
    "PlayerState",
    "SingleMode",
]
