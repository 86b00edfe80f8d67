"""Session-scoped visibility of replicated posts.

A session always sees posts created on its own replica. Remote posts become
visible only up to the watermark recorded at the session's last sync, and
only if they had already arrived locally by then. Arrival is judged by the
store's arrival sequence, so a sync running for another session cannot make
its merges visible here.
"""

import logging
import threading
from dataclasses import dataclass

from .records import Post
from .store import ReplicaStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Watermark:
    """Instant of a session's last sync and the last arrival it may see."""

    instant: int
    arrival: int = 0


class SessionWatermarks:
    """Per-session record of the last sync."""

    def __init__(self) -> None:
        self._marks: dict[str, Watermark | None] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._marks)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._marks

    def observe(self, session_id: str) -> None:
        """Register a session with no watermark if it is new."""
        with self._lock:
            if session_id not in self._marks:
                self._marks[session_id] = None
                logger.debug(f"New session {session_id}")

    def get(self, session_id: str) -> int | None:
        """Instant of the session's last sync, or None before its first."""
        with self._lock:
            mark = self._marks.get(session_id)
            return None if mark is None else mark.instant

    def arrival(self, session_id: str) -> int:
        """Highest arrival sequence number the session may see."""
        with self._lock:
            mark = self._marks.get(session_id)
            return 0 if mark is None else mark.arrival

    def advance(self, session_id: str, instant: int, arrival: int = 0) -> int:
        """Move a session's watermark forward; it never moves back.

        Args:
            session_id: Session that finished a sync.
            instant: The ``now`` captured by that sync.
            arrival: Last arrival sequence number the sync accounted for.

        Returns:
            The watermark instant after the update.
        """
        with self._lock:
            current = self._marks.get(session_id)
            if current is not None:
                instant = max(current.instant, instant)
                arrival = max(current.arrival, arrival)
            self._marks[session_id] = Watermark(instant, arrival)
            return instant


def visible_posts(
    store: ReplicaStore, watermarks: SessionWatermarks, session_id: str
) -> list[Post]:
    """Posts the given session is allowed to see, oldest first."""
    watermark = watermarks.get(session_id)
    seen_arrival = watermarks.arrival(session_id)

    visible = []
    for post, arrival in store.posts_with_arrival():
        if post.origin_replica == store.replica:
            visible.append(post)
        elif (
            watermark is not None
            and post.timestamp <= watermark
            and arrival <= seen_arrival
        ):
            visible.append(post)

    return visible
