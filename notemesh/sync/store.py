"""In-memory post log and clear-command log for a single replica.

The post log is a grow-only set keyed by post id; the only removal path is a
clear command, which prunes every post at or before its timestamp and raises
a horizon below which no post can be merged back in. Both logs live inside a
ReplicaStore that serializes every mutation behind one lock.

Every post also gets a local arrival sequence number, increasing in the
order posts enter the log. Visibility checks compare against it instead of
wall-clock instants, so two syncs racing on the same replica cannot see each
other's merges early.
"""

import logging
import threading
from typing import Any, Protocol

from .records import ClearCommand, Post, ReplicaClock, new_id

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> int: ...

    def observe(self, timestamp: int) -> None: ...


class PostLog:
    """Append-only collection of immutable posts.

    Not thread-safe on its own; ReplicaStore guards access.
    """

    def __init__(self, replica: str, clock: Clock):
        self.replica = replica
        self.clock = clock
        self._posts: dict[str, Post] = {}
        self._arrivals: dict[str, int] = {}
        self._last_arrival = 0
        self._horizon: int | None = None
        self.merged_count = 0

    def __len__(self) -> int:
        return len(self._posts)

    def __contains__(self, post_id: object) -> bool:
        return post_id in self._posts

    @property
    def horizon(self) -> int | None:
        """Highest clear timestamp applied so far, or None."""
        return self._horizon

    @property
    def last_arrival(self) -> int:
        """Arrival sequence number of the most recent post, 0 if none yet."""
        return self._last_arrival

    def _record_arrival(self, post: Post) -> int:
        self._last_arrival += 1
        self._posts[post.id] = post
        self._arrivals[post.id] = self._last_arrival
        return self._last_arrival

    def append(
        self, author: str, content: str, origin_session: str | None = None
    ) -> Post:
        """Create a post stamped now with this replica's identity.

        Args:
            author: Post author, already validated.
            content: Post body, already validated.
            origin_session: Session that requested the post.

        Returns:
            The created Post.
        """
        timestamp = self.clock.now()
        post = Post(
            id=new_id(self.replica),
            author=author,
            content=content,
            timestamp=timestamp,
            origin_replica=self.replica,
            session_id=origin_session,
        )
        self._record_arrival(post)

        logger.debug(f"Appended post {post.id} at ts={timestamp}")
        return post

    def merge(self, post: Post) -> bool:
        """Insert a remote post unless it is known or already cleared.

        The local clock is moved past the post's timestamp either way.

        Returns:
            True if the post was added, False for duplicates and posts at or
            below the clear horizon.
        """
        self.clock.observe(post.timestamp)

        if post.id in self._posts:
            return False
        if self._horizon is not None and post.timestamp <= self._horizon:
            logger.debug(
                f"Rejected post {post.id}: ts={post.timestamp} "
                f"is covered by clear at {self._horizon}"
            )
            return False

        self._record_arrival(post)
        self.merged_count += 1
        return True

    def prune(self, instant: int) -> int:
        """Remove every post with timestamp at or before ``instant``."""
        doomed = [pid for pid, p in self._posts.items() if p.timestamp <= instant]
        for pid in doomed:
            del self._posts[pid]
            del self._arrivals[pid]

        if self._horizon is None or instant > self._horizon:
            self._horizon = instant

        return len(doomed)

    def all(self) -> list[Post]:
        return sorted(self._posts.values(), key=lambda p: (p.timestamp, p.id))

    def all_local(self) -> list[Post]:
        """Posts that originated on this replica."""
        return [p for p in self.all() if p.origin_replica == self.replica]

    def since(self, instant: int) -> list[Post]:
        """Posts with timestamp strictly greater than ``instant``."""
        return [p for p in self.all() if p.timestamp > instant]

    def arrival(self, post_id: str) -> int | None:
        """Arrival sequence number of a post, or None if it is not held."""
        return self._arrivals.get(post_id)


class ClearLog:
    """Append-only log of clear commands that prunes a PostLog."""

    def __init__(self, replica: str, clock: Clock, posts: PostLog):
        self.replica = replica
        self.clock = clock
        self.posts = posts
        self._commands: dict[str, ClearCommand] = {}

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._commands

    def issue(self) -> ClearCommand:
        """Create a clear command stamped now and apply it locally."""
        command = ClearCommand(
            id=new_id(self.replica),
            timestamp=self.clock.now(),
            origin_replica=self.replica,
        )
        self.apply(command)
        return command

    def apply(self, command: ClearCommand) -> bool:
        """Record a command and prune the post log.

        Returns:
            True if the command was new, False if it was already known.
        """
        self.clock.observe(command.timestamp)

        if command.id in self._commands:
            return False

        self._commands[command.id] = command
        removed = self.posts.prune(command.timestamp)

        logger.info(
            f"Applied clear {command.id} from {command.origin_replica} "
            f"at ts={command.timestamp}, pruned {removed} posts"
        )
        return True

    # Peer pushes go through the same idempotent path
    receive = apply

    def all(self) -> list[ClearCommand]:
        return sorted(self._commands.values(), key=lambda c: (c.timestamp, c.id))


class ReplicaStore:
    """State container owning a replica's post log and clear-command log.

    Every mutation and every snapshot read runs under a single re-entrant
    lock, so a prune can never interleave with an append or merge.
    """

    def __init__(self, replica: str, clock: Clock | None = None):
        """Initialize the store.

        Args:
            replica: Identity of this replica.
            clock: Time source; defaults to a monotonic ReplicaClock.
        """
        self.replica = replica
        self.clock = clock or ReplicaClock()
        self.posts = PostLog(replica, self.clock)
        self.clears = ClearLog(replica, self.clock, self.posts)
        self._lock = threading.RLock()

    def now(self) -> int:
        return self.clock.now()

    # ==================== Mutations ====================

    def create_post(
        self, author: str, content: str, session_id: str | None = None
    ) -> Post:
        with self._lock:
            return self.posts.append(author, content, session_id)

    def merge_post(self, post: Post) -> bool:
        with self._lock:
            return self.posts.merge(post)

    def issue_clear(self) -> ClearCommand:
        with self._lock:
            return self.clears.issue()

    def apply_clear(self, command: ClearCommand) -> bool:
        with self._lock:
            return self.clears.apply(command)

    def receive_clear(self, command: ClearCommand) -> bool:
        with self._lock:
            return self.clears.receive(command)

    # ==================== Snapshots ====================

    def all_posts(self) -> list[Post]:
        with self._lock:
            return self.posts.all()

    def local_posts(self) -> list[Post]:
        with self._lock:
            return self.posts.all_local()

    def posts_since(self, instant: int) -> list[Post]:
        with self._lock:
            return self.posts.since(instant)

    def posts_with_arrival(self) -> list[tuple[Post, int]]:
        """Posts paired with their local arrival sequence number."""
        with self._lock:
            return [(p, self.posts.arrival(p.id)) for p in self.posts.all()]

    def last_arrival(self) -> int:
        with self._lock:
            return self.posts.last_arrival

    def arrival_of(self, post_id: str) -> int | None:
        with self._lock:
            return self.posts.arrival(post_id)

    def has_post(self, post_id: str) -> bool:
        with self._lock:
            return post_id in self.posts

    def clear_commands(self) -> list[ClearCommand]:
        with self._lock:
            return self.clears.all()

    def has_clear(self, command_id: str) -> bool:
        with self._lock:
            return command_id in self.clears

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            return {
                "replica": self.replica,
                "post_count": len(self.posts),
                "local_post_count": len(self.posts.all_local()),
                "clear_count": len(self.clears),
                "merged_count": self.posts.merged_count,
                "clear_horizon": self.posts.horizon,
            }
