"""Bounded cache of resolved playback URLs."""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from videoai.core.logger import get_logger

logger = get_logger(__name__)

ReleaseHook = Callable[[], None]


@dataclass
class _Entry:
    url: str
    release: Optional[ReleaseHook] = None


class PlaybackUrlCache:
    """
    Insertion-ordered URL cache with a hard size cap.

    Entries for locally allocated references (``file://`` URLs of temporary
    assets) carry a release hook that runs when the entry leaves the cache.
    """

    def __init__(self, max_entries: int = 20):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, video_id: str) -> bool:
        return video_id in self._entries

    def get(self, video_id: str) -> Optional[str]:
        entry = self._entries.get(video_id)
        return entry.url if entry else None

    def put(self, video_id: str, url: str, release: Optional[ReleaseHook] = None) -> None:
        previous = self._entries.pop(video_id, None)
        if previous is not None and previous.release != release:
            self._release(video_id, previous)

        self._entries[video_id] = _Entry(url, release)

        while len(self._entries) > self.max_entries:
            oldest_id, oldest = self._entries.popitem(last=False)
            logger.debug(f"Evicting playback URL for {oldest_id}")
            self._release(oldest_id, oldest)

    def evict(self, video_id: str) -> None:
        entry = self._entries.pop(video_id, None)
        if entry is not None:
            self._release(video_id, entry)

    def clear(self) -> None:
        while self._entries:
            video_id, entry = self._entries.popitem(last=False)
            self._release(video_id, entry)

    def _release(self, video_id: str, entry: _Entry) -> None:
        if entry.release is None:
            return
        try:
            entry.release()
        except OSError as e:
            logger.warning(f"Releasing local playback reference for {video_id} failed: {e}")
