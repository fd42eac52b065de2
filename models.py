# models.py
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

_FRACTION = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class SearchResult:
    """The single top result returned by a search backend."""
    title: str
    video_id: str
    thumbnail_url: str
    accessibility_label: str


@dataclass
class HistoryEntry:
    """A song the user inserted into the queue, remembered for later searches."""
    video_id: str
    title: str
    thumbnail_url: str
    accessibility_label: str
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_result(cls, result: SearchResult) -> "HistoryEntry":
        return cls(
            video_id=result.video_id,
            title=result.title,
            thumbnail_url=result.thumbnail_url,
            accessibility_label=result.accessibility_label,
        )

    def to_result(self) -> SearchResult:
        return SearchResult(
            title=self.title,
            video_id=self.video_id,
            thumbnail_url=self.thumbnail_url,
            accessibility_label=self.accessibility_label,
        )

    def to_dict(self) -> dict:
        return {
            "VideoId": self.video_id,
            "Title": self.title,
            "ThumbnailUrl": self.thumbnail_url,
            "AccessibilityData": self.accessibility_label,
            "Timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Optional["HistoryEntry"]:
        """Parses one stored record, returning None when a field is missing."""
        fields = ("VideoId", "Title", "ThumbnailUrl", "AccessibilityData")
        if any(not isinstance(data.get(name), str) for name in fields):
            return None
        try:
            return cls(
                video_id=data["VideoId"],
                title=data["Title"],
                thumbnail_url=data["ThumbnailUrl"],
                accessibility_label=data["AccessibilityData"],
                timestamp=parse_timestamp(data["Timestamp"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


def parse_timestamp(raw: str) -> datetime:
    """Parses an ISO-8601 stamp into a naive local datetime.

    Files written by other tools may carry a UTC offset, a ``Z`` suffix or
    seven fractional digits; all of them are compared against naive
    ``datetime.now()`` stamps, so aware values are converted to local time.
    """
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    match = _FRACTION.search(text)
    if match:
        text = text[:match.start()] + "." + (match.group(1) + "000000")[:6] + text[match.end():]
    stamp = datetime.fromisoformat(text)
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone().replace(tzinfo=None)
    return stamp


@dataclass(frozen=True)
class Query:
    """Settled query text, ordered by its generation number."""
    text: str
    generation: int


@dataclass(frozen=True)
class DisplayItem:
    """One row of the result list shown to the user."""
    title: str
    video_id: str
    thumbnail_url: str
    accessibility_label: str
    source: str = "history"

    @classmethod
    def from_result(cls, result: SearchResult, source: str) -> "DisplayItem":
        return cls(
            title=result.title,
            video_id=result.video_id,
            thumbnail_url=result.thumbnail_url,
            accessibility_label=result.accessibility_label,
            source=source,
        )

    @property
    def tags(self) -> List[str]:
        return [part.strip() for part in self.accessibility_label.split("•") if part.strip()]

    @property
    def link(self) -> str:
        return f"https://music.youtube.com/watch?v={self.video_id}"

    def to_result(self) -> SearchResult:
        return SearchResult(self.title, self.video_id, self.thumbnail_url, self.accessibility_label)


class SessionState(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class HistoryLimit(Enum):
    NONE = "None"
    ONE = "1"
    FIVE = "5"
    TEN = "10"
    TWENTY = "20"

    @property
    def count(self) -> int:
        return 0 if self is HistoryLimit.NONE else int(self.value)

    @classmethod
    def parse(cls, value) -> "HistoryLimit":
        """Accepts the stored setting string (or an int); unknown values disable history."""
        text = str(value).strip()
        for limit in cls:
            if limit.value.lower() == text.lower():
                return limit
        return cls.NONE

    def next(self) -> "HistoryLimit":
        members = list(HistoryLimit)
        return members[(members.index(self) + 1) % len(members)]


class QueueInsertPosition(Enum):
    INSERT_AT_END = "INSERT_AT_END"
    INSERT_AFTER_CURRENT_VIDEO = "INSERT_AFTER_CURRENT_VIDEO"


@dataclass
class AppState:
    """A single object to hold the entire application state."""
    results: List[DisplayItem] = field(default_factory=list)
    selected_result: Optional[DisplayItem] = None
