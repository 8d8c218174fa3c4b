"""REST API routes."""
from fastapi import APIRouter, HTTPException, Depends, Request
import logging

from conversationbot.models.schemas import APIResponse
from conversationbot.core.session_store import SessionStore

logger = logging.getLogger(__name__)

# Create API router
api_router = APIRouter()


async def get_session_store(request: Request) -> SessionStore:
    """Dependency to get the session store created at startup."""
    return request.app.state.store


@api_router.get("/sessions", response_model=APIResponse)
async def list_sessions(store: SessionStore = Depends(get_session_store)):
    """
    List all sessions.

    Returns:
        API response with actor ids and their dialogue state
    """
    sessions = []
    for actor_id in await store.actor_ids():
        session = await store.get(actor_id)
        if session is not None:
            sessions.append({
                "actor_id": actor_id,
                "state": session.state.name,
                "last_updated": session.last_updated
            })

    return APIResponse(
        success=True,
        message=f"Found {len(sessions)} sessions",
        data={"sessions": sessions}
    )


@api_router.get("/sessions/{actor_id}", response_model=APIResponse)
async def get_session(actor_id: str, store: SessionStore = Depends(get_session_store)):
    """
    Get session details.

    Args:
        actor_id: Actor identifier

    Returns:
        API response with the session record
    """
    session = await store.get(actor_id)
    if session is None:
        logger.info(f"Session lookup for unknown actor: {actor_id}")
        raise HTTPException(status_code=404, detail=f"Session not found: {actor_id}")

    return APIResponse(
        success=True,
        message="Session retrieved successfully",
        data={
            "actor_id": actor_id,
            "state": session.state.name,
            "session": session.model_dump(mode='json')
        }
    )
