# authcore Pydantic Schemas
from authcore.schemas.auth import (
    CurrentUserResponse,
    LoginRequest,
    MessageResponse,
    ResendVerificationRequest,
    SignupRequest,
    TokenResponse,
)

__all__ = [
    "CurrentUserResponse",
    "LoginRequest",
    "MessageResponse",
    "ResendVerificationRequest",
    "SignupRequest",
    "TokenResponse",
]
