# config.py
import json
import logging
import os
from dataclasses import dataclass

from models import HistoryLimit

logger = logging.getLogger(__name__)

SETTINGS_NAMESPACE = "youtube-music"


@dataclass
class Config:
    """Holds all application configuration."""
    DEBOUNCE_SECONDS: float = 0.3
    DEFAULT_SERVER_ADDRESS: str = "http://127.0.0.1:26538/"
    APP_NAME: str = "Powertoys-Extension"
    REQUEST_TIMEOUT: float = 10.0
    ADVANCE_DELAY_SECONDS: float = 1.5
    HISTORY_FILENAME: str = "youtube_music_history.json"
    SETTINGS_FILENAME: str = "settings.json"
    DEFAULT_HISTORY_LIMIT: str = "5"
    SEARCH_PROVIDER: str = "server"
    SHOW_LIVE_RESULT_WITHOUT_HISTORY: bool = False
    LOG_LEVEL: str = "INFO"


def _namespaced(name: str) -> str:
    return f"{SETTINGS_NAMESPACE}.{name}"


class SettingsManager:
    """User-editable settings, polled by the search pipeline at query time.

    Settings are stored as a flat JSON object whose keys are prefixed with the
    ``youtube-music.`` namespace. Saving a smaller history limit trims the
    history file; saving ``NONE`` deletes it.
    """

    HISTORY_KEY = _namespaced("ShowHistory")
    SERVER_KEY = _namespaced("ApiServerAddress")

    def __init__(self, path: str, history_store=None, default_server: str = Config.DEFAULT_SERVER_ADDRESS):
        self.path = path
        self.history_store = history_store
        self.default_server = default_server
        self._history_limit = HistoryLimit.parse(Config.DEFAULT_HISTORY_LIMIT)
        self._server_address = default_server
        self.load()

    @property
    def history_limit(self) -> HistoryLimit:
        return self._history_limit

    @property
    def server_address(self) -> str:
        return self._server_address or self.default_server

    def load(self) -> None:
        """Loads settings from disk, keeping defaults for anything missing."""
        if not os.path.exists(self.path) or os.path.getsize(self.path) == 0:
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.warning("Could not read settings from %s, using defaults", self.path)
            return
        if not isinstance(data, dict):
            return
        if self.HISTORY_KEY in data:
            self._history_limit = HistoryLimit.parse(data[self.HISTORY_KEY])
        if data.get(self.SERVER_KEY):
            self._server_address = str(data[self.SERVER_KEY])

    def save(self) -> None:
        """Writes settings and applies the history limit to the stored history."""
        data = {
            self.HISTORY_KEY: self._history_limit.value,
            self.SERVER_KEY: self._server_address,
        }
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=4)
        except IOError:
            logger.exception("Failed to write settings to %s", self.path)
            return

        if self.history_store is None:
            return
        if self._history_limit is HistoryLimit.NONE:
            self.history_store.clear()
        else:
            self.history_store.trim(self._history_limit.count)

    def set_history_limit(self, limit: HistoryLimit) -> None:
        self._history_limit = limit
        self.save()

    def set_server_address(self, address: str) -> None:
        self._server_address = address.strip() or self.default_server
        self.save()
