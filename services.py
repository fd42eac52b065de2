# services.py
import json
import logging
import os
import threading
import time
from typing import Any, Callable, List, Optional, Tuple

import requests
from ytmusicapi import YTMusic

from models import HistoryEntry, HistoryLimit, QueueInsertPosition, SearchResult

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when the player API cannot be reached or answers with a failure status."""


def _dig(data: Any, *path) -> Any:
    """Walks nested dicts/lists, returning None as soon as a step is missing."""
    for key in path:
        try:
            data = data[key]
        except (KeyError, IndexError, TypeError):
            return None
    return data


class HistoryStore:
    """A JSON file of recently queued songs, unique by video id."""

    def __init__(self, filename: str):
        self.filename = filename
        self._lock = threading.Lock()

    def _read(self) -> List[HistoryEntry]:
        if not os.path.exists(self.filename) or os.path.getsize(self.filename) == 0:
            return []
        try:
            with open(self.filename, "r", encoding="utf-8") as f:
                records = json.load(f)
        except (OSError, ValueError):
            logger.warning("History file %s is unreadable, ignoring it", self.filename)
            return []
        if not isinstance(records, list):
            return []

        entries = []
        for record in records:
            entry = HistoryEntry.from_dict(record) if isinstance(record, dict) else None
            if entry is None:
                logger.warning("Skipping malformed history record: %r", record)
                continue
            entries.append(entry)
        return entries

    def _write(self, entries: List[HistoryEntry]) -> None:
        with open(self.filename, "w", encoding="utf-8") as f:
            json.dump([e.to_dict() for e in entries], f, indent=4)

    @staticmethod
    def _dedupe(entries: List[HistoryEntry]) -> List[HistoryEntry]:
        """Keeps the most recent entry per video id, ordered oldest first."""
        latest: dict[str, HistoryEntry] = {}
        for entry in entries:
            current = latest.get(entry.video_id)
            if current is None or entry.timestamp >= current.timestamp:
                latest[entry.video_id] = entry
        return sorted(latest.values(), key=lambda e: e.timestamp)

    def load(self) -> List[HistoryEntry]:
        """Returns the stored history, newest first."""
        with self._lock:
            entries = self._dedupe(self._read())
        entries.reverse()
        return entries

    def save(self, entry: HistoryEntry, limit: int) -> None:
        """Upserts an entry and evicts the oldest ones beyond ``limit``."""
        if limit <= 0:
            return
        with self._lock:
            entries = self._dedupe(self._read() + [entry])
            self._write(entries[-limit:])

    def trim(self, limit: int) -> None:
        with self._lock:
            entries = self._dedupe(self._read())
            if limit > 0:
                entries = entries[-limit:]
            self._write(entries)

    def clear(self) -> None:
        with self._lock:
            if os.path.exists(self.filename):
                os.remove(self.filename)
                logger.info("History cleared.")


class PlayerApiClient:
    """A client for the th-ch/youtube-music player API server."""

    def __init__(self, base_url: str, app_name: str = "Powertoys-Extension", timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.app_name = app_name
        self.timeout = timeout
        self.session = requests.Session()
        self._access_token: Optional[str] = None

    def set_access_token(self, token: str) -> None:
        self._access_token = token
        self.session.headers["Authorization"] = token

    def authenticate(self) -> bool:
        """Requests a token for this app; returns whether one was obtained."""
        try:
            response = self.session.post(f"{self.base_url}/auth/{self.app_name}", timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Authentication against %s failed: %s", self.base_url, e)
            return False
        if not response.ok:
            return False
        try:
            token = response.json().get("accessToken")
        except ValueError:
            return False
        if not token:
            return False
        self.set_access_token(token)
        return True

    def _request(self, method: str, path: str, payload: Optional[dict]) -> requests.Response:
        try:
            return self.session.request(method, f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise BackendError(f"API request {method} {path} failed: {e}") from e

    def _send(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        if self._access_token is None:
            self.authenticate()

        response = self._request(method, path, payload)
        if response.status_code == 401:
            self.authenticate()
            response = self._request(method, path, payload)

        if response.status_code in (204, 404):
            return None
        if not response.ok:
            raise BackendError(f"API request {method} {path} failed: {response.status_code} {response.reason}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"API request {method} {path} returned invalid JSON") from e

    def search(self, query: str) -> Optional[SearchResult]:
        """Returns the top card of a search, or None when there is none."""
        data = self._send("POST", "/api/v1/search", {"query": query})
        card = _dig(
            data, "contents", "tabbedSearchResultsRenderer", "tabs", 0, "tabRenderer", "content",
            "sectionListRenderer", "contents", 0, "musicCardShelfRenderer",
        )
        return self._parse_card(card)

    def _parse_card(self, card: Any) -> Optional[SearchResult]:
        title_run = _dig(card, "title", "runs", 0)
        fields = {
            "thumbnail_url": _dig(card, "thumbnail", "musicThumbnailRenderer", "thumbnail", "thumbnails", 0, "url"),
            "title": _dig(title_run, "text"),
            "video_id": _dig(title_run, "navigationEndpoint", "watchEndpoint", "videoId"),
            "accessibility_label": _dig(card, "subtitle", "accessibility", "accessibilityData", "label"),
        }
        if not all(isinstance(value, str) for value in fields.values()):
            return None
        return SearchResult(**fields)

    def enqueue(self, video_id: str, position: QueueInsertPosition = QueueInsertPosition.INSERT_AT_END) -> None:
        self._send("POST", "/api/v1/queue", {"videoId": video_id, "insertPosition": position.value})

    def advance(self) -> None:
        self._send("POST", "/api/v1/next")

    def previous(self) -> None:
        self._send("POST", "/api/v1/previous")

    def toggle_play(self) -> None:
        self._send("POST", "/api/v1/toggle-play")

    def get_song(self) -> Optional[dict]:
        """Returns info about the playing song, or None when nothing is playing."""
        return self._send("GET", "/api/v1/song")

    def close(self) -> None:
        self.session.close()


class YTMusicSearchService:
    """A searcher that asks YouTube Music directly through ytmusicapi."""

    def __init__(self, ytmusic: Optional[YTMusic] = None):
        self._ytmusic = ytmusic

    def search(self, query: str) -> Optional[SearchResult]:
        if self._ytmusic is None:
            self._ytmusic = YTMusic()
        search_items = self._ytmusic.search(query=query, filter="songs", limit=1)
        for item in search_items:
            parsed_result = self._parse_item(item)
            if parsed_result:
                return parsed_result
        return None

    def _parse_item(self, item: dict) -> Optional[SearchResult]:
        """Parses a single raw API item into our SearchResult data model."""
        if not item or not item.get("videoId"):
            return None

        duration_seconds = item.get("duration_seconds")
        duration_formatted = item.get("duration") or ""
        if duration_seconds is not None:
            minutes, seconds = divmod(duration_seconds, 60)
            duration_formatted = f"{minutes}:{seconds:02d}"

        album = item.get("album")
        artists = ", ".join(a["name"] for a in item.get("artists") or [] if a.get("name"))
        parts = ["Song", artists, album["name"] if album else "", duration_formatted]
        thumbnails = item.get("thumbnails") or []
        return SearchResult(
            title=item.get("title", "N/A"),
            video_id=item["videoId"],
            thumbnail_url=thumbnails[-1]["url"] if thumbnails else "",
            accessibility_label=" • ".join(p for p in parts if p),
        )


class BackendHandle:
    """Owns the single live player client, replacing it when the address changes."""

    def __init__(self, factory: Callable[[str], PlayerApiClient] = PlayerApiClient):
        self._factory = factory
        self._lock = threading.Lock()
        self._client: Optional[PlayerApiClient] = None
        self._address: Optional[str] = None

    def get(self, address: str) -> PlayerApiClient:
        address = address.rstrip("/")
        with self._lock:
            if self._client is None or self._address != address:
                if self._client is not None:
                    logger.info("Server address changed to %s, replacing client", address)
                    self._client.close()
                self._client = self._factory(address)
                self._address = address
            return self._client

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
            self._client = None
            self._address = None


class QueueService:
    """Inserts a chosen song into the player queue and records it in history."""

    def __init__(self, backends: BackendHandle, settings, history_store: HistoryStore, advance_delay: float = 1.5):
        self.backends = backends
        self.settings = settings
        self.history_store = history_store
        self.advance_delay = advance_delay

    def insert(self, result: SearchResult, position: QueueInsertPosition) -> Tuple[bool, str]:
        """Runs the insert, returning success status and message."""
        client = self.backends.get(self.settings.server_address)
        try:
            client.enqueue(result.video_id, position)
            if position is QueueInsertPosition.INSERT_AFTER_CURRENT_VIDEO:
                time.sleep(self.advance_delay)
                client.advance()
        except BackendError as e:
            return False, f"Could not queue '{result.title}': {e}"

        limit = self.settings.history_limit
        if limit is not HistoryLimit.NONE:
            try:
                self.history_store.save(HistoryEntry.from_result(result), limit.count)
            except (OSError, ValueError) as e:
                logger.warning("Could not save history: %s", e)

        if position is QueueInsertPosition.INSERT_AFTER_CURRENT_VIDEO:
            return True, f"Now playing '{result.title}'."
        return True, f"Added '{result.title}' to the end of the queue."

    def previous(self) -> Tuple[bool, str]:
        return self._control("previous", "Back to the previous song.")

    def toggle_play(self) -> Tuple[bool, str]:
        return self._control("toggle_play", "Toggled playback.")

    def _control(self, action: str, done_message: str) -> Tuple[bool, str]:
        client = self.backends.get(self.settings.server_address)
        try:
            getattr(client, action)()
        except BackendError as e:
            return False, f"Player command failed: {e}"
        return True, done_message

    def now_playing(self) -> Tuple[bool, str]:
        """Describes the song the player is on."""
        client = self.backends.get(self.settings.server_address)
        try:
            song = client.get_song()
        except BackendError as e:
            return False, f"Could not reach the player: {e}"
        if not song:
            return True, "Nothing is playing."
        title = song.get("title") or "Unknown title"
        artist = song.get("artist")
        state = "Paused" if song.get("isPaused") else "Playing"
        return True, f"{state}: '{title}'" + (f" by {artist}." if artist else ".")
