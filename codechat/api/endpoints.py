"""API endpoints for the chat service."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import PlainTextResponse, StreamingResponse

from codechat import __version__
from codechat.api.dependencies import UNAUTHORIZED, get_container, get_session, require_session
from codechat.container import ServiceContainer
from codechat.models.conversation import ChatRequest, HealthResponse, SessionRequest, SessionResponse
from codechat.models.session import Session
from codechat.services.gate import SESSION_COOKIE
from codechat.utils.data_stream import DATA_STREAM_HEADER, DATA_STREAM_VERSION
from codechat.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/chat", tags=["Chat"])
async def chat(
    request: ChatRequest,
    session: Session = Depends(require_session),
    container: ServiceContainer = Depends(get_container),
) -> StreamingResponse:
    """Run one chat turn and stream the assistant's response.

    The body is a data stream: text deltas, tool calls and tool results in the
    order they were produced, closed by a finish part.
    """
    existing = await container.store.get(request.id)
    if existing and not container.gate.authorize(session, existing.user_id):
        logger.warning(f"User {session.user_id} tried to continue conversation {request.id} they do not own")
        raise HTTPException(status_code=401, detail=UNAUTHORIZED)

    stream = container.orchestrator.stream_turn(request.id, request.messages, session.user_id)
    return StreamingResponse(
        stream,
        media_type="text/plain; charset=utf-8",
        headers={DATA_STREAM_HEADER: DATA_STREAM_VERSION},
    )


@router.get("/chat", tags=["Chat"])
async def get_chat(
    id: str | None = None,
    session: Session | None = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    """Return a conversation owned by the caller."""
    if not id:
        raise HTTPException(status_code=404, detail="Not Found")
    if session is None:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED)

    conversation = await container.store.get(id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Not Found")
    if not container.gate.authorize(session, conversation.user_id):
        raise HTTPException(status_code=401, detail=UNAUTHORIZED)

    return conversation.as_dict()


@router.delete("/chat", tags=["Chat"])
async def delete_chat(
    id: str | None = None,
    session: Session | None = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
) -> PlainTextResponse:
    """Delete a conversation owned by the caller."""
    if not id:
        raise HTTPException(status_code=404, detail="Not Found")
    if session is None:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED)

    try:
        conversation = await container.store.get(id)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Not Found")
        if not container.gate.authorize(session, conversation.user_id):
            raise HTTPException(status_code=401, detail=UNAUTHORIZED)

        await container.store.delete(id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete conversation {id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=500, detail="An error occurred while processing your request"
        ) from e

    logger.info(f"Deleted conversation {id} for user {session.user_id}")
    return PlainTextResponse("Chat deleted", status_code=200)


@router.get("/history", tags=["Chat"])
async def history(
    session: Session = Depends(require_session),
    container: ServiceContainer = Depends(get_container),
) -> list[dict[str, Any]]:
    """List the caller's conversations, newest first."""
    conversations = await container.store.list_by_owner(session.user_id)
    return [conversation.as_dict() for conversation in conversations]


@router.post("/auth/session", response_model=SessionResponse, tags=["Auth"])
async def create_session(
    response: Response,
    request: SessionRequest | None = None,
    container: ServiceContainer = Depends(get_container),
) -> SessionResponse:
    """Issue a guest session token.

    A requested ``user_id`` is only honored when dev sessions are enabled.
    """
    user_id = request.user_id if request else None
    if user_id and not container.settings.allow_dev_sessions:
        logger.warning(f"Ignoring requested user id {user_id!r}: dev sessions are disabled")
        user_id = None
    session = container.session_manager.create_session(user_id)
    response.set_cookie(SESSION_COOKIE, session.token, httponly=True, samesite="lax")
    return SessionResponse(token=session.token, user_id=session.user_id)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
