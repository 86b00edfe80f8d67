"""Best-effort fan-out of posts and clear commands to peer replicas."""

import asyncio
import logging
from dataclasses import dataclass, field

from .peers import Peer, PeerClient, PeerOutcome, PeerRegistry, PeerStatus
from .records import ClearCommand, Post

logger = logging.getLogger(__name__)


@dataclass
class PushReport:
    """Outcome of pushing a batch of items to all peers."""

    outcomes: dict[str, list[PeerOutcome]] = field(default_factory=dict)
    # Ids of items acknowledged by at least one peer
    delivered: set[str] = field(default_factory=set)


class PropagationDispatcher:
    """Pushes items to every registered peer without waiting on a quorum."""

    def __init__(self, registry: PeerRegistry, client: PeerClient):
        self.registry = registry
        self.client = client

    async def propagate(
        self, item: Post | ClearCommand, peers: list[Peer] | None = None
    ) -> list[PeerOutcome]:
        """Send one item to peers concurrently.

        Args:
            item: Post or clear command to send.
            peers: Subset of peers to target; all registered peers if omitted.

        Failures are logged by the client and otherwise ignored.
        """
        if peers is None:
            peers = self.registry.peers()
        if not peers:
            return []

        outcomes = await asyncio.gather(
            *(self.client.push(peer, item) for peer in peers)
        )

        delivered = sum(1 for o in outcomes if o.ok)
        logger.debug(
            f"Propagated {type(item).__name__} {item.id} "
            f"to {delivered}/{len(peers)} peers"
        )
        return list(outcomes)

    async def push_state(
        self, commands: list[ClearCommand], posts: list[Post]
    ) -> PushReport:
        """Propagate clear commands, then posts, one item at a time.

        Every clear command reaches all peers before any post is sent, so a
        receiving replica prunes first. A peer that times out or is
        unreachable is dropped for the rest of the batch.

        Returns:
            PushReport with per-peer outcomes and the ids that got through.
        """
        peers = self.registry.peers()
        report = PushReport(outcomes={peer.name: [] for peer in peers})
        alive = list(peers)

        for item in [*commands, *posts]:
            if not alive:
                break
            outcomes = await self.propagate(item, alive)

            for outcome in outcomes:
                report.outcomes[outcome.peer].append(outcome)
                if outcome.ok:
                    report.delivered.add(item.id)

            gone = {
                o.peer for o in outcomes
                if o.status in (PeerStatus.TIMEOUT, PeerStatus.UNREACHABLE)
            }
            if gone:
                logger.info(f"Skipping remaining pushes to {', '.join(sorted(gone))}")
                alive = [peer for peer in alive if peer.name not in gone]

        return report
