"""Pydantic schemas for authentication API."""

from datetime import datetime

from pydantic import BaseModel, Field


class SignupRequest(BaseModel):
    """Request to register a new account."""

    username: str = Field(
        ...,
        min_length=3,
        max_length=50,
        pattern=r"^[a-zA-Z][a-zA-Z0-9_]*$",
        description="Username (3-50 chars, alphanumeric and underscore, must start with letter)",
    )
    email: str = Field(
        ...,
        max_length=320,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        description="Address the verification link is sent to",
    )
    password: str = Field(
        ...,
        min_length=12,
        max_length=128,
        description="Password (minimum 12 characters)",
    )


class LoginRequest(BaseModel):
    """Request for login."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ResendVerificationRequest(BaseModel):
    """Request a fresh verification email."""

    email: str = Field(..., min_length=3, max_length=320)


class TokenResponse(BaseModel):
    """Response with a session token."""

    token: str
    token_type: str = "bearer"
    expires_at: datetime
    expires_in: int = Field(description="Token lifetime in seconds")


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class CurrentUserResponse(BaseModel):
    """Identity carried by the presented session token."""

    username: str
    expires_at: datetime
