"""Authentication schemas."""

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    """Login request body."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class Token(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
