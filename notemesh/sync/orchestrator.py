"""Sync orchestration between a replica and its peers.

A sync cycle runs in fixed phases:

1. Pull every peer's clear-command log and apply unknown commands.
2. Pull posts newer than the session's watermark and merge them.
3. Advance the session's watermark.
4. Optionally push local clear commands and posts back out.

Phase 1 finishes for all peers before phase 2 starts, so a stale post held
by a lagging peer can never be merged back after a clear that covers it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .dispatcher import PropagationDispatcher
from .peers import PeerClient, PeerOutcome, PeerRegistry, PeerStatus
from .store import ReplicaStore
from .visibility import SessionWatermarks

logger = logging.getLogger(__name__)


@dataclass
class SyncSummary:
    """Result of one sync cycle."""

    replica: str
    session_id: str
    merged: int = 0
    propagated: int = 0
    clear_commands: int = 0
    clears_applied: int = 0
    watermark: int | None = None
    pushed: bool = False
    peers: dict[str, dict[str, str]] = field(default_factory=dict)

    @property
    def reachable(self) -> list[str]:
        return [
            name for name, phases in self.peers.items()
            if all(status == PeerStatus.SUCCESS.value for status in phases.values())
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "replica": self.replica,
            "session_id": self.session_id,
            "merged": self.merged,
            "propagated": self.propagated,
            "clear_commands": self.clear_commands,
            "clears_applied": self.clears_applied,
            "watermark": self.watermark,
            "pushed": self.pushed,
            "peers": self.peers,
        }


class SyncOrchestrator:
    """Drives pull/merge/push cycles for one replica."""

    def __init__(
        self,
        store: ReplicaStore,
        watermarks: SessionWatermarks,
        registry: PeerRegistry,
        client: PeerClient,
        dispatcher: PropagationDispatcher | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            store: Local replica state.
            watermarks: Per-session sync watermarks.
            registry: Known peers, this replica excluded.
            client: Client used for pulls.
            dispatcher: Dispatcher used for pushes; built from the registry
                and client if omitted.
        """
        self.store = store
        self.watermarks = watermarks
        self.registry = registry
        self.client = client
        self.dispatcher = dispatcher or PropagationDispatcher(registry, client)

    async def sync(self, session_id: str, push: bool = True) -> SyncSummary:
        """Run one sync cycle on behalf of a session.

        Args:
            session_id: Session whose watermark is used and advanced.
            push: Whether to push local state to peers afterwards. A
                pull-only sync skips this phase.

        Returns:
            SyncSummary with merge and propagation counts. Unreachable peers
            are reported per peer and never fail the cycle.
        """
        self.watermarks.observe(session_id)
        summary = SyncSummary(replica=self.store.replica, session_id=session_id)
        peers = self.registry.peers()
        for peer in peers:
            summary.peers[peer.name] = {}

        # Phase 1: clear commands
        clear_outcomes = await asyncio.gather(
            *(self.client.fetch_clears(peer) for peer in peers)
        )
        for outcome in clear_outcomes:
            summary.peers[outcome.peer]["clears"] = outcome.status.value
            if not outcome.ok:
                continue
            for command in outcome.data:
                if self.store.apply_clear(command):
                    summary.clears_applied += 1

        # Phase 2: posts since the session's watermark
        now = self.store.now()
        seen_arrival = self.store.last_arrival()
        since = self.watermarks.get(session_id) or 0
        post_outcomes = await asyncio.gather(
            *(self.client.fetch_posts_since(peer, since) for peer in peers)
        )
        for outcome in post_outcomes:
            summary.peers[outcome.peer]["posts"] = outcome.status.value
            if outcome.ok:
                merged, last = self._merge_posts(outcome, now)
                summary.merged += merged
                seen_arrival = max(seen_arrival, last)

        # Phase 3: watermark
        summary.watermark = self.watermarks.advance(session_id, now, seen_arrival)

        # Phase 4: push
        if push:
            local_posts = self.store.local_posts()
            report = await self.dispatcher.push_state(
                self.store.clear_commands(), local_posts
            )
            for name, outcomes in report.outcomes.items():
                summary.peers[name]["push"] = self._worst_status(outcomes).value
            summary.propagated = sum(1 for p in local_posts if p.id in report.delivered)
            summary.pushed = True

        summary.clear_commands = len(self.store.clear_commands())

        logger.info(
            f"Sync for session {session_id} on {self.store.replica}: "
            f"merged={summary.merged}, clears_applied={summary.clears_applied}, "
            f"propagated={summary.propagated}, "
            f"reachable={len(summary.reachable)}/{len(peers)}"
        )
        return summary

    def _merge_posts(self, outcome: PeerOutcome, now: int) -> tuple[int, int]:
        """Merge one peer's posts.

        Returns:
            Number of posts added and the highest arrival sequence number
            among them (0 if none).
        """
        merged = 0
        last = 0
        for post in outcome.data:
            # Ignore posts stamped after this cycle started (clock skew)
            if post.timestamp > now:
                logger.debug(
                    f"Deferring future-dated post {post.id} from {outcome.peer}"
                )
                continue
            if self.store.merge_post(post):
                merged += 1
                last = max(last, self.store.arrival_of(post.id) or 0)
        return merged, last

    @staticmethod
    def _worst_status(outcomes: list[PeerOutcome]) -> PeerStatus:
        for outcome in outcomes:
            if not outcome.ok:
                return outcome.status
        return PeerStatus.SUCCESS
