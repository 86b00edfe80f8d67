"""Peer-facing replication routes.

These are called by other replicas during sync and are kept out of the
public OpenAPI schema.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body

from ..sync import ClearCommand, Post, ReplicaStore

logger = logging.getLogger(__name__)


def create_internal_router(store: ReplicaStore) -> APIRouter:
    """Build the /internal router serving raw state to peers.

    Args:
        store: Local replica state.

    Returns:
        APIRouter to mount on the replica app.
    """
    router = APIRouter(prefix="/internal", include_in_schema=False)

    @router.get("/posts")
    async def fetch_posts(since: int = 0) -> dict[str, Any]:
        """Posts with timestamp strictly greater than ``since``."""
        return {
            "replica": store.replica,
            "posts": [p.to_dict() for p in store.posts_since(since)],
        }

    @router.get("/clears")
    async def fetch_clears() -> dict[str, Any]:
        """The full clear-command log."""
        return {
            "replica": store.replica,
            "clears": [c.to_dict() for c in store.clear_commands()],
        }

    @router.post("/posts")
    async def receive_post(payload: Any = Body(default=None)) -> dict[str, Any]:
        """Merge a post pushed by a peer; duplicates are accepted as no-ops."""
        post = Post.from_dict(payload)
        merged = store.merge_post(post)
        if merged:
            logger.info(f"Merged pushed post {post.id} from {post.origin_replica}")
        return {"replica": store.replica, "merged": merged}

    @router.post("/clears")
    async def receive_clear(payload: Any = Body(default=None)) -> dict[str, Any]:
        """Apply a clear command pushed by a peer."""
        command = ClearCommand.from_dict(payload)
        applied = store.receive_clear(command)
        return {"replica": store.replica, "applied": applied}

    return router
