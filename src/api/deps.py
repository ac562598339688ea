"""FastAPI dependency injection functions."""

from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, Response, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.api.middleware.error_handler import AuthorizationError
from src.core.config import get_settings
from src.models.order import OrderOwner
from src.schemas.auth import UserContext
from src.services.session_service import SessionService


def get_session_cookie_config() -> dict:
    """Get session cookie configuration from settings."""
    settings = get_settings()
    # SameSite=None requires Secure=True, so plain-HTTP development uses Lax
    samesite = "none" if settings.session_cookie_secure else "lax"
    return {
        "key": settings.session_cookie_name,
        "max_age": settings.session_cookie_max_age,
        "httponly": True,
        "secure": settings.session_cookie_secure,
        "samesite": samesite,
        "path": "/",
    }


def is_admin(user: UserContext | None) -> bool:
    """Check whether a user carries the configured admin role."""
    return user is not None and user.role == get_settings().admin_role


@dataclass
class SessionContext:
    """Context for an anonymous shopper session."""

    session_id: UUID
    session_token: str


@dataclass
class AuthContext:
    """Context for authenticated user or anonymous session.

    Either user or session will be set, not both.
    """

    user: UserContext | None = None
    session: SessionContext | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return is_admin(self.user)

    @property
    def user_id(self) -> UUID | None:
        return self.user.user_id if self.user else None

    @property
    def session_id(self) -> UUID | None:
        return self.session.session_id if self.session else None

    @property
    def owner(self) -> OrderOwner:
        """Owner of the carts and orders created in this context."""
        if self.user:
            return OrderOwner(user_id=self.user.user_id)
        return OrderOwner(session_id=self.session_id)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return decode_jwt(token).to_user_context()

    except AuthError as e:
        detail = "Token has expired" if e.code == AuthErrorCode.TOKEN_EXPIRED else e.message
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def require_admin(user: Annotated[UserContext, Depends(get_current_user)]) -> UserContext:
    """Require an authenticated user with the admin role.

    Raises:
        AuthorizationError: 403 if the user is not an admin.
    """
    if not is_admin(user):
        raise AuthorizationError("Admin access required")
    return user


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
AdminUser = Annotated[UserContext, Depends(require_admin)]


# Cookie utility functions


def get_session_token(request: Request) -> str | None:
    """Extract session token from X-Session-Token header or cookie.

    The header wins so guests keep working when third-party cookies are
    blocked.
    """
    header_token = request.headers.get("x-session-token")
    if header_token:
        return header_token

    config = get_session_cookie_config()
    return request.cookies.get(config["key"])


def set_session_cookie(response: Response, token: str) -> None:
    config = get_session_cookie_config()
    response.set_cookie(
        key=config["key"],
        value=token,
        max_age=config["max_age"],
        httponly=config["httponly"],
        secure=config["secure"],
        samesite=config["samesite"],
        path=config["path"],
    )


# Dual authentication dependency


async def _resolve_auth(request: Request, authorization: str | None) -> AuthContext | None:
    token = _bearer_token(authorization)
    if token:
        try:
            return AuthContext(user=decode_jwt(token).to_user_context())
        except AuthError:
            # Invalid JWT, fall through to session handling
            pass

    session_token = get_session_token(request)
    if session_token:
        session = await SessionService().get_valid_session(session_token)
        if session:
            return AuthContext(
                session=SessionContext(
                    session_id=UUID(session["id"]),
                    session_token=session_token,
                )
            )
    return None


async def get_current_user_or_session(
    request: Request,
    response: Response,
    authorization: Annotated[str | None, Header()] = None,
) -> AuthContext:
    """Get authenticated user or anonymous session.

    Accepts a JWT in the Authorization header or a session token in the
    X-Session-Token header or cookie. If neither is valid, a new session is
    created and its token is returned in the cookie and response header.

    Returns:
        AuthContext: Context containing either user or session.
    """
    auth = await _resolve_auth(request, authorization)
    if auth is not None:
        return auth

    session_data, new_token = await SessionService().create_session()
    set_session_cookie(response, new_token)
    response.headers["x-session-token"] = new_token

    return AuthContext(
        session=SessionContext(
            session_id=UUID(session_data["id"]),
            session_token=new_token,
        )
    )


async def get_required_user_or_session(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> AuthContext:
    """Get authenticated user or existing session (no auto-create).

    Raises:
        HTTPException: 401 if no valid authentication is present.
    """
    auth = await _resolve_auth(request, authorization)
    if auth is not None:
        return auth

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
    )


# Type aliases for dual auth
DualAuth = Annotated[AuthContext, Depends(get_current_user_or_session)]
RequiredDualAuth = Annotated[AuthContext, Depends(get_required_user_or_session)]
