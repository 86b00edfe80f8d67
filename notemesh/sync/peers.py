"""Peer registry and HTTP client for replica-to-replica calls.

Every call returns a PeerOutcome instead of raising: a peer that is down,
slow or misbehaving simply shows up as a non-success outcome for that cycle.
There are no retries; the next externally triggered sync tries again.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .records import ClearCommand, Post

logger = logging.getLogger(__name__)

DEFAULT_PULL_TIMEOUT = 2.0
DEFAULT_PUSH_TIMEOUT = 1.0


@dataclass(frozen=True)
class Peer:
    """A named replica endpoint."""

    name: str
    url: str


class PeerRegistry:
    """Static table of known replicas, with this replica excluded by name."""

    def __init__(self, endpoints: dict[str, str], self_name: str):
        self.self_name = self_name
        self._peers = [
            Peer(name=name, url=url.rstrip("/"))
            for name, url in endpoints.items()
            if name != self_name
        ]

    def __len__(self) -> int:
        return len(self._peers)

    def __iter__(self):
        return iter(self._peers)

    def peers(self) -> list[Peer]:
        return list(self._peers)

    def names(self) -> list[str]:
        return [p.name for p in self._peers]


class PeerStatus(Enum):
    """Result of a single peer call."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    ERROR = "error"


@dataclass
class PeerOutcome:
    """Tagged result of one call to one peer."""

    peer: str
    status: PeerStatus
    data: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == PeerStatus.SUCCESS


class PeerClient:
    """Makes the four replication calls against peer replicas."""

    def __init__(
        self,
        pull_timeout: float = DEFAULT_PULL_TIMEOUT,
        push_timeout: float = DEFAULT_PUSH_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the peer client.

        Args:
            pull_timeout: Timeout in seconds for fetching state from a peer.
            push_timeout: Timeout in seconds for pushing one item to a peer.
            transport: Optional httpx transport, used to route calls
                in-process instead of over the network.
        """
        self.pull_timeout = pull_timeout
        self.push_timeout = push_timeout
        self._transport = transport

    async def _request(
        self,
        peer: Peer,
        method: str,
        path: str,
        timeout: float,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
    ) -> PeerOutcome:
        url = f"{peer.url}{path}"

        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method, url, params=params, json=json_data
                )
        except httpx.TimeoutException:
            logger.warning(f"Timeout calling {peer.name} {method} {path}")
            return PeerOutcome(peer.name, PeerStatus.TIMEOUT, error="timeout")
        except httpx.TransportError as e:
            logger.warning(f"Peer {peer.name} unreachable: {e}")
            return PeerOutcome(peer.name, PeerStatus.UNREACHABLE, error=str(e))

        if response.status_code != 200:
            logger.warning(
                f"Peer {peer.name} returned HTTP {response.status_code} "
                f"for {method} {path}"
            )
            return PeerOutcome(
                peer.name,
                PeerStatus.ERROR,
                error=f"HTTP {response.status_code}: {response.text}",
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Peer {peer.name} sent invalid JSON: {e}")
            return PeerOutcome(peer.name, PeerStatus.ERROR, error="invalid JSON")

        return PeerOutcome(peer.name, PeerStatus.SUCCESS, data=data)

    async def fetch_posts_since(self, peer: Peer, instant: int) -> PeerOutcome:
        """Fetch posts newer than ``instant``; data is a list of Post."""
        outcome = await self._request(
            peer, "GET", "/internal/posts", self.pull_timeout,
            params={"since": instant},
        )
        return self._decode(outcome, "posts", Post.from_dict)

    async def fetch_clears(self, peer: Peer) -> PeerOutcome:
        """Fetch a peer's full clear log; data is a list of ClearCommand."""
        outcome = await self._request(
            peer, "GET", "/internal/clears", self.pull_timeout
        )
        return self._decode(outcome, "clears", ClearCommand.from_dict)

    async def push_post(self, peer: Peer, post: Post) -> PeerOutcome:
        return await self._request(
            peer, "POST", "/internal/posts", self.push_timeout,
            json_data=post.to_dict(),
        )

    async def push_clear(self, peer: Peer, command: ClearCommand) -> PeerOutcome:
        return await self._request(
            peer, "POST", "/internal/clears", self.push_timeout,
            json_data=command.to_dict(),
        )

    async def push(self, peer: Peer, item: Post | ClearCommand) -> PeerOutcome:
        if isinstance(item, ClearCommand):
            return await self.push_clear(peer, item)
        return await self.push_post(peer, item)

    @staticmethod
    def _decode(outcome: PeerOutcome, key: str, parse) -> PeerOutcome:
        """Turn a successful JSON body into parsed records."""
        if not outcome.ok:
            return outcome

        raw = outcome.data.get(key) if isinstance(outcome.data, dict) else None
        if not isinstance(raw, list):
            return PeerOutcome(
                outcome.peer, PeerStatus.ERROR, error=f"missing '{key}' list"
            )

        records = []
        for item in raw:
            try:
                records.append(parse(item))
            except ValueError as e:
                logger.warning(f"Skipping malformed record from {outcome.peer}: {e}")

        return PeerOutcome(outcome.peer, PeerStatus.SUCCESS, data=records)
