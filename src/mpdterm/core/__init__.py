"""Core application layer.

This module contains the logic that sits between the async MPD client
and a front end.

Classes:
    ConfigManager: QSettings wrapper for configuration.
    MpdMonitor: Background idle/tick/command loop with Qt signals.
"""

from mpdterm.core.config import ConfigManager
from mpdterm.core.mpd_monitor import MpdMonitor

__all__ = ["ConfigManager", "MpdMonitor"]
