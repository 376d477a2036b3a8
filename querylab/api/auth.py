"""Authentication API endpoints and the session guard."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from querylab.core import get_db
from querylab.schemas.auth import LoginRequest, ProfileResponse, RegisterRequest, TokenResponse
from querylab.services.auth import (
    AuthService,
    InvalidCredentialsError,
    InvalidTokenError,
    MissingTokenError,
    SessionClaims,
    TokenExpiredError,
    TokenRevokedError,
    validate_access_token,
)
from querylab.services.revocation import RevocationRegistry
from querylab.services.user import EmailTakenError, UsernameTakenError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db)


def get_bearer_token(request: Request) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()  # Remove "Bearer " prefix
    return token or None


def check_session(token: str | None) -> SessionClaims:
    """Decide whether a presented token may pass.

    The revocation check runs before signature verification so a revoked
    token is refused even while it is still cryptographically valid.
    """
    if token is None:
        raise MissingTokenError("Missing or invalid authorization header")
    if RevocationRegistry.get_instance().is_revoked(token):
        raise TokenRevokedError("Token has been revoked")
    return validate_access_token(token)


async def get_current_session(
    request: Request,
    token: str | None = Depends(get_bearer_token),
) -> SessionClaims:
    """Dependency guarding protected endpoints.

    Every failure reason produces the same 401 so clients cannot tell a
    revoked token from an expired or forged one.
    """
    try:
        claims = check_session(token)
    except (MissingTokenError, TokenExpiredError, TokenRevokedError, InvalidTokenError) as e:
        quiet = isinstance(e, MissingTokenError | TokenExpiredError)
        logger.log(
            logging.DEBUG if quiet else logging.WARNING,
            f"Rejected {request.method} {request.url.path}: {e}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "reason": type(e).__name__,
            },
        )
        raise _unauthorized() from e

    request.state.session = claims
    return claims


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Register a new user and return a session token.

    Returns 409 Conflict if the username is already taken.
    """
    try:
        tokens: dict[str, Any] = await auth_service.register(
            username=request.username,
            email=request.email,
            password=request.password,
        )
    except UsernameTakenError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        ) from e
    except EmailTakenError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return TokenResponse(**tokens)


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Authenticate and get a session token."""
    try:
        tokens = await auth_service.login(
            username=request.username,
            password=request.password,
        )
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        ) from e
    return TokenResponse(**tokens)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    token: str | None = Depends(get_bearer_token),
    session: SessionClaims = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
) -> Response:
    """Log out by revoking the presented token for the rest of its lifetime."""
    if token is not None:
        await auth_service.logout(token)
    logger.info(f"User logged out: {session.username}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/profile", response_model=ProfileResponse)
async def get_profile(
    session: SessionClaims = Depends(get_current_session),
) -> ProfileResponse:
    """Return the identity carried by the verified token."""
    return ProfileResponse(user_id=session.subject_id, username=session.username)
