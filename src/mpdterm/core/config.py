"""Configuration manager using QSettings for persistent storage."""

import logging
import os

from PySide6.QtCore import QSettings

from mpdterm.api.mpd.client import DEFAULT_PORT

logger = logging.getLogger(__name__)

# MPD
_KEY_MPD_HOST = "mpd/host"
_KEY_MPD_PORT = "mpd/port"
_KEY_MPD_PASSWORD = "mpd/password"
_KEY_MPD_RECONNECT_DELAY = "mpd/reconnect_delay"

# Logging
_KEY_LOG_LEVEL = "logging/level"

DEFAULT_HOST = "localhost"
DEFAULT_RECONNECT_DELAY = 5
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigManager:
    """Wrapper around QSettings for type-safe config access.

    QSettings stores config in platform-specific locations:
    - Windows: HKEY_CURRENT_USER\\Software\\mpdterm\\mpdterm
    - macOS: ~/Library/Preferences/com.mpdterm.mpdterm.plist
    - Linux: ~/.config/mpdterm/mpdterm.conf

    Example:
        config = ConfigManager()
        host, port = config.get_mpd_host(), config.get_mpd_port()
    """

    def __init__(self, organization: str = "mpdterm", application: str = "mpdterm") -> None:
        """Initialize the config manager.

        Args:
            organization: Organization name for QSettings.
            application: Application name for QSettings.
        """
        self._settings = QSettings(organization, application)

    @property
    def settings(self) -> QSettings:
        """Return the underlying QSettings instance."""
        return self._settings

    # -- MPD settings ----------------------------------------------------------

    def get_mpd_host(self) -> str:
        """Return the MPD host.

        Returns:
            Hostname, IP or unix socket path (default "localhost").
        """
        value = self._settings.value(_KEY_MPD_HOST, DEFAULT_HOST, str)
        return str(value) if value else DEFAULT_HOST

    def set_mpd_host(self, host: str) -> None:
        """Set the MPD host.

        Args:
            host: Hostname, IP, or absolute path of a unix socket.
        """
        self._settings.setValue(_KEY_MPD_HOST, host)

    def get_mpd_port(self) -> int:
        """Return the MPD port.

        Returns:
            Port number (default 6600).
        """
        value = self._settings.value(_KEY_MPD_PORT, DEFAULT_PORT, int)
        return max(1, min(65535, int(value)))  # type: ignore[arg-type]

    def set_mpd_port(self, port: int) -> None:
        """Set the MPD port.

        Args:
            port: Port number (1-65535).
        """
        self._settings.setValue(_KEY_MPD_PORT, max(1, min(65535, port)))

    def get_mpd_password(self) -> str:
        value = self._settings.value(_KEY_MPD_PASSWORD, "", str)
        return str(value) if value else ""

    def set_mpd_password(self, password: str) -> None:
        self._settings.setValue(_KEY_MPD_PASSWORD, password)

    def get_reconnect_delay(self) -> int:
        """Return the delay before reconnecting after a failure.

        Returns:
            Delay in seconds (default 5).
        """
        value = self._settings.value(_KEY_MPD_RECONNECT_DELAY, DEFAULT_RECONNECT_DELAY, int)
        return max(1, min(60, int(value)))  # type: ignore[arg-type]

    def set_reconnect_delay(self, seconds: int) -> None:
        """Set the reconnect delay.

        Args:
            seconds: Delay in seconds (1-60).
        """
        self._settings.setValue(_KEY_MPD_RECONNECT_DELAY, max(1, min(60, seconds)))

    def resolve_mpd_address(self) -> tuple[str, int, str]:
        """Return (host, port, password), applying MPD_HOST/MPD_PORT overrides.

        MPD_HOST may carry a password as "password@host", the convention
        shared by mpc and other MPD clients.
        """
        host = self.get_mpd_host()
        port = self.get_mpd_port()
        password = self.get_mpd_password()

        env_host = os.environ.get("MPD_HOST", "")
        if env_host:
            if "@" in env_host and not env_host.startswith("@"):
                password, env_host = env_host.split("@", 1)
            host = env_host

        env_port = os.environ.get("MPD_PORT", "")
        if env_port:
            try:
                port = max(1, min(65535, int(env_port)))
            except ValueError:
                logger.warning("Ignoring invalid MPD_PORT value: %s", env_port)

        return host, port, password

    # -- Logging ---------------------------------------------------------------

    def get_log_level(self) -> str:
        """Return the configured log level name (default "WARNING")."""
        value = str(self._settings.value(_KEY_LOG_LEVEL, "WARNING", str)).upper()
        return value if value in LOG_LEVELS else "WARNING"

    def set_log_level(self, level: str) -> None:
        """Set the log level.

        Args:
            level: One of DEBUG, INFO, WARNING, ERROR.
        """
        level = level.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        self._settings.setValue(_KEY_LOG_LEVEL, level)

    # -- General settings ------------------------------------------------------

    def clear(self) -> None:
        """Clear all settings (useful for testing or reset)."""
        self._settings.clear()

    def sync(self) -> None:
        """Force settings to be written to disk."""
        self._settings.sync()
