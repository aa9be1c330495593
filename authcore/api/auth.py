"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from authcore.core.logging import bind_subject
from authcore.schemas.auth import (
    CurrentUserResponse,
    LoginRequest,
    MessageResponse,
    ResendVerificationRequest,
    SignupRequest,
    TokenResponse,
)
from authcore.services.auth import AuthService
from authcore.services.errors import (
    RegistrationError,
    UnauthorizedError,
    VerificationFailedError,
)
from authcore.services.tokens import SessionToken, TokenClaims

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def get_auth_service(request: Request) -> AuthService:
    """Dependency to get the process-wide auth service."""
    return request.app.state.auth_service


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _token_response(token: SessionToken) -> TokenResponse:
    return TokenResponse(
        token=token.value,
        expires_at=token.expires_at,
        expires_in=int((token.expires_at - token.issued_at).total_seconds()),
    )


async def get_current_claims(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenClaims:
    """Dependency to get the claims of a valid, non-revoked bearer token."""
    try:
        claims = auth_service.authenticate(request.headers.get("Authorization"))
    except UnauthorizedError as e:
        raise _unauthorized(str(e)) from e
    bind_subject(claims.subject)
    return claims


@router.post("/signup", response_model=MessageResponse)
async def signup(
    request: SignupRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Register a new account.

    The account stays unverified until the emailed token is confirmed.
    """
    logger.info(f"Registration attempt for username: {request.username}")
    try:
        await auth_service.signup(
            username=request.username,
            email=request.email,
            password=request.password,
        )
    except RegistrationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return MessageResponse(message="User registered successfully")


@router.get("/verify", response_model=MessageResponse)
async def verify_account(
    token: str = Query(..., min_length=1),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Confirm an email address with a verification token."""
    try:
        await auth_service.confirm(token)
    except VerificationFailedError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return MessageResponse(message="Account verified successfully.")


@router.post("/verify/resend", response_model=MessageResponse)
async def resend_verification(
    request: ResendVerificationRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Send a new verification email. The reply is the same for every address."""
    await auth_service.resend_verification(request.email)
    return MessageResponse(
        message="If the address belongs to an unverified account, a new email has been sent."
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Authenticate and get a session token."""
    try:
        token = await auth_service.login(
            username=request.username,
            password=request.password,
        )
    except UnauthorizedError as e:
        raise _unauthorized(str(e)) from e
    bind_subject(token.subject)
    return _token_response(token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the presented session token for the rest of its lifetime."""
    try:
        auth_service.logout(request.headers.get("Authorization"))
    except UnauthorizedError as e:
        raise _unauthorized(str(e)) from e
    return MessageResponse(message="Logout successful")


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Exchange a valid session token for a new one with a fresh TTL."""
    try:
        token = auth_service.refresh(request.headers.get("Authorization"))
    except UnauthorizedError as e:
        raise _unauthorized(str(e)) from e
    bind_subject(token.subject)
    return _token_response(token)


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user_info(
    claims: TokenClaims = Depends(get_current_claims),
) -> CurrentUserResponse:
    """Get the identity of the current session."""
    return CurrentUserResponse(username=claims.subject, expires_at=claims.expires_at)
