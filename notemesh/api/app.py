"""FastAPI application for a notemesh replica."""

import logging
import uuid
from datetime import datetime
from typing import Any

from fastapi import Body, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import Config
from ..sync import (
    PeerClient,
    PeerRegistry,
    ReplicaStore,
    SessionWatermarks,
    SyncOrchestrator,
    ValidationError,
    visible_posts,
)
from ..sync.records import validate_post_input
from .internal import create_internal_router

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_id"
SESSION_HEADER = "x-session-id"


def create_app(
    config: Config,
    store: ReplicaStore | None = None,
    watermarks: SessionWatermarks | None = None,
    orchestrator: SyncOrchestrator | None = None,
    peer_client: PeerClient | None = None,
) -> FastAPI:
    """Create the replica application.

    Args:
        config: Application configuration.
        store: Replica state; a fresh in-memory store if omitted.
        watermarks: Session watermarks; fresh if omitted.
        orchestrator: Sync orchestrator; built from config if omitted.
        peer_client: Client for peer calls when building the orchestrator.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="notemesh replica",
        description="Note-sharing replica with session-scoped consistency",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    replica = config.replica.name
    store = store or ReplicaStore(replica)
    watermarks = watermarks or SessionWatermarks()
    if orchestrator is None:
        registry = PeerRegistry(config.peers.endpoints, replica)
        client = peer_client or PeerClient(
            pull_timeout=config.sync.pull_timeout_seconds,
            push_timeout=config.sync.push_timeout_seconds,
        )
        orchestrator = SyncOrchestrator(store, watermarks, registry, client)

    # Store references for route handlers and tests
    app.state.config = config
    app.state.store = store
    app.state.watermarks = watermarks
    app.state.orchestrator = orchestrator

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    def session_id(request: Request, response: Response) -> str:
        """Resolve the caller's session, minting one if needed."""
        sid = request.cookies.get(SESSION_COOKIE) or request.headers.get(
            SESSION_HEADER
        )
        if not sid:
            sid = uuid.uuid4().hex
            response.set_cookie(SESSION_COOKIE, sid, httponly=True)
        watermarks.observe(sid)
        return sid

    # ==================== Public Routes ====================

    @app.post("/post")
    async def create_post(
        payload: Any = Body(default=None),
        sid: str = Depends(session_id),
    ) -> dict[str, Any]:
        """Create a post on this replica only."""
        data = payload if isinstance(payload, dict) else {}
        author, content = validate_post_input(data.get("author"), data.get("content"))
        post = store.create_post(author, content, sid)
        logger.info(f"Created post {post.id} by {author!r}")
        return {"message": f"Saved on {replica}", "post": post.to_dict()}

    @app.get("/posts")
    async def list_posts(
        sync: bool = False,
        sid: str = Depends(session_id),
    ) -> dict[str, Any]:
        """Posts visible to the calling session, optionally after a pull."""
        if sync:
            await orchestrator.sync(sid, push=False)

        return {
            "replica": replica,
            "session_id": sid,
            "watermark": watermarks.get(sid),
            "posts": [p.to_dict() for p in visible_posts(store, watermarks, sid)],
        }

    @app.post("/sync")
    async def sync_replicas(sid: str = Depends(session_id)) -> dict[str, Any]:
        """Pull clears and posts from peers, then push local state."""
        summary = await orchestrator.sync(sid, push=True)
        result = summary.to_dict()
        result["message"] = f"Merged {summary.merged} posts into {replica}"
        result["posts_count"] = store.get_stats()["post_count"]
        return result

    @app.post("/clear")
    async def clear_posts(sid: str = Depends(session_id)) -> dict[str, Any]:
        """Issue a clear command; peers learn of it on the next sync."""
        command = store.issue_clear()
        return {
            "message": f"Cleared posts on {replica}",
            "command": command.to_dict(),
        }

    @app.get("/debug/replicas")
    async def debug_replicas(sid: str = Depends(session_id)) -> dict[str, Any]:
        """Replica identity and counters for the calling session."""
        stats = store.get_stats()
        return {
            "replica": replica,
            "port": config.replica.port,
            "session_id": sid,
            "watermark": watermarks.get(sid),
            "post_count": stats["post_count"],
            "clear_count": stats["clear_count"],
            "merged_count": stats["merged_count"],
            "peers": orchestrator.registry.names(),
        }

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint for monitoring and load balancers."""
        return {
            "status": "ok",
            "replica": replica,
            "timestamp": datetime.now().isoformat(),
        }

    app.include_router(create_internal_router(store))

    return app
