"""Replication engine for notemesh replicas.

Provides the post and clear-command logs, session visibility tracking, and
the peer sync machinery that moves state between replicas on demand.
"""

from .dispatcher import PropagationDispatcher, PushReport
from .orchestrator import SyncOrchestrator, SyncSummary
from .peers import Peer, PeerClient, PeerOutcome, PeerRegistry, PeerStatus
from .records import ClearCommand, Post, ReplicaClock, ValidationError
from .store import ClearLog, PostLog, ReplicaStore
from .visibility import SessionWatermarks, Watermark, visible_posts

__all__ = [
    "ClearCommand",
    "ClearLog",
    "Peer",
    "PeerClient",
    "PeerOutcome",
    "PeerRegistry",
    "PeerStatus",
    "Post",
    "PostLog",
    "PropagationDispatcher",
    "PushReport",
    "ReplicaClock",
    "ReplicaStore",
    "SessionWatermarks",
    "SyncOrchestrator",
    "SyncSummary",
    "ValidationError",
    "Watermark",
    "visible_posts",
]
