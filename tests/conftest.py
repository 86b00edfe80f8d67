"""Shared fixtures: a controllable clock and an in-process replica network."""

from dataclasses import dataclass

import httpx
import pytest
from fastapi import FastAPI

from notemesh.api import create_app
from notemesh.config import Config, PeersConfig, ReplicaConfig
from notemesh.sync import (
    PeerClient,
    PeerRegistry,
    ReplicaStore,
    SessionWatermarks,
    SyncOrchestrator,
)


class FakeClock:
    """Clock pinned to a value set by the test.

    Like ReplicaClock, it never reads at or below a timestamp it observed.
    """

    def __init__(self, value: int = 0):
        self.value = value
        self.floor = 0

    def now(self) -> int:
        return max(self.value, self.floor)

    def observe(self, timestamp: int) -> None:
        self.floor = max(self.floor, timestamp + 1)

    def set(self, value: int) -> None:
        self.value = value


class ReplicaNetwork(httpx.AsyncBaseTransport):
    """Routes requests by host name to in-process replica apps."""

    def __init__(self):
        self._apps: dict[str, httpx.ASGITransport] = {}
        self.down: set[str] = set()

    def add(self, host: str, app: FastAPI) -> None:
        self._apps[host] = httpx.ASGITransport(app=app)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host in self.down or host not in self._apps:
            raise httpx.ConnectError(f"cannot reach {host}", request=request)
        return await self._apps[host].handle_async_request(request)


@dataclass
class Replica:
    name: str
    store: ReplicaStore
    watermarks: SessionWatermarks
    orchestrator: SyncOrchestrator
    app: FastAPI

    def http(self, network: ReplicaNetwork, session_id: str) -> httpx.AsyncClient:
        """Client talking to this replica's public routes as a session."""
        return httpx.AsyncClient(
            transport=network,
            base_url=f"http://{self.name}",
            headers={"X-Session-Id": session_id},
        )


def make_replica(
    name: str, all_names: list[str], network: ReplicaNetwork, clock: FakeClock
) -> Replica:
    """Build a replica wired to ``network`` and register it there."""
    endpoints = {n: f"http://{n}" for n in all_names}
    config = Config(
        replica=ReplicaConfig(name=name),
        peers=PeersConfig(endpoints=endpoints),
    )
    store = ReplicaStore(name, clock=clock)
    watermarks = SessionWatermarks()
    orchestrator = SyncOrchestrator(
        store,
        watermarks,
        PeerRegistry(endpoints, name),
        PeerClient(transport=network),
    )
    app = create_app(config, store=store, watermarks=watermarks, orchestrator=orchestrator)
    network.add(name, app)
    return Replica(name, store, watermarks, orchestrator, app)


@pytest.fixture
def clock():
    """A clock starting at t=1."""
    return FakeClock(1)


@pytest.fixture
def store(clock):
    """An empty store for replica 'r1'."""
    return ReplicaStore("r1", clock=clock)


@pytest.fixture
def network():
    return ReplicaNetwork()
