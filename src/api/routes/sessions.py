"""Session API routes for anonymous shoppers."""

from fastapi import APIRouter, HTTPException, Response, status

from src.api.deps import DualAuth, set_session_cookie
from src.schemas.session import SessionResponse
from src.services.session_service import SessionService

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new session",
    description="Creates a new guest session and returns its token in the cookie and X-Session-Token header.",
)
async def create_session(response: Response) -> SessionResponse:
    """Create a new anonymous session, even if the caller already has one."""
    service = SessionService()
    session_data, token = await service.create_session()

    set_session_cookie(response, token)
    response.headers["x-session-token"] = token

    return SessionResponse(**session_data)


@router.get(
    "/me",
    response_model=SessionResponse,
    summary="Get current session",
    description="Returns the current guest session, creating one if none exists.",
)
async def get_my_session(auth: DualAuth) -> SessionResponse:
    """Get the current session.

    Raises:
        HTTPException: 400 if the caller is signed in and has no session.
    """
    if auth.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Signed-in users don't have guest sessions.",
        )

    session = await SessionService().get_session_by_token(auth.session.session_token)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )

    return SessionResponse(**session)
