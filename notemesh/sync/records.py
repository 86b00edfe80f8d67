"""Immutable records exchanged between replicas.

Posts and clear commands are created once, tagged with their origin replica,
and never modified afterwards. Timestamps are integer milliseconds since the
epoch so they travel through JSON and query strings unchanged.
"""

import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any


class ValidationError(ValueError):
    """Raised when a post request or a replicated record is malformed."""


def new_id(replica: str) -> str:
    """Generate an opaque, globally unique record id tagged with its replica."""
    return f"{replica}-{uuid.uuid4().hex}"


def _require_text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"'{key}' must be a non-empty string")
    return value


def _require_int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{key}' must be an integer")
    return value


def validate_post_input(author: Any, content: Any) -> tuple[str, str]:
    """Check user-supplied post fields.

    Returns:
        The stripped (author, content) pair.

    Raises:
        ValidationError: If either field is missing, not text, or blank.
    """
    if not isinstance(author, str) or not isinstance(content, str):
        raise ValidationError("author and content required")
    author, content = author.strip(), content.strip()
    if not author or not content:
        raise ValidationError("author and content required")
    return author, content


@dataclass(frozen=True)
class Post:
    """A single immutable note."""

    id: str
    author: str
    content: str
    timestamp: int
    origin_replica: str
    session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "author": self.author,
            "content": self.content,
            "timestamp": self.timestamp,
            "origin_replica": self.origin_replica,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Post":
        """Create from a dictionary received from a peer.

        Raises:
            ValidationError: If a required field is missing or mistyped.
        """
        if not isinstance(data, dict):
            raise ValidationError("post payload must be an object")
        session_id = data.get("session_id")
        if session_id is not None and not isinstance(session_id, str):
            raise ValidationError("'session_id' must be a string or null")
        return cls(
            id=_require_text(data, "id"),
            author=_require_text(data, "author"),
            content=_require_text(data, "content"),
            timestamp=_require_int(data, "timestamp"),
            origin_replica=_require_text(data, "origin_replica"),
            session_id=session_id,
        )


@dataclass(frozen=True)
class ClearCommand:
    """Tombstone deleting every post created at or before ``timestamp``."""

    id: str
    timestamp: int
    origin_replica: str

    def covers(self, post: Post) -> bool:
        return post.timestamp <= self.timestamp

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "origin_replica": self.origin_replica,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ClearCommand":
        """Create from a dictionary received from a peer.

        Raises:
            ValidationError: If a required field is missing or mistyped.
        """
        if not isinstance(data, dict):
            raise ValidationError("clear command payload must be an object")
        return cls(
            id=_require_text(data, "id"),
            timestamp=_require_int(data, "timestamp"),
            origin_replica=_require_text(data, "origin_replica"),
        )


class ReplicaClock:
    """Millisecond wall clock that never repeats or goes backwards.

    Two calls on the same replica always yield strictly increasing values,
    even when the system clock stalls or steps back. Timestamps seen on
    records from other replicas push the clock forward, so a replica whose
    wall clock lags never stamps new posts below a clear it already knows.
    """

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            wall = int(time.time() * 1000)
            self._last = max(wall, self._last + 1)
            return self._last

    def observe(self, timestamp: int) -> None:
        """Move the clock past a timestamp received from a peer."""
        with self._lock:
            self._last = max(self._last, timestamp)
