"""Pydantic schemas for authentication API."""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    """Request for account registration."""

    username: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="Password (minimum 8 characters)",
    )


class LoginRequest(BaseModel):
    """Request for login.

    Unknown fields are ignored so older clients that send ``userId`` keep working.
    """

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, max_length=128)


class TokenResponse(BaseModel):
    """Response with a session token."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiry in seconds")


class ProfileResponse(BaseModel):
    """Identity carried by the verified session token."""

    user_id: UUID
    username: str
