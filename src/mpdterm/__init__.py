"""mpdterm - a terminal client for the Music Player Daemon."""

__version__ = "0.1.0"
