# querylab Schemas
from querylab.schemas.auth import LoginRequest, ProfileResponse, RegisterRequest, TokenResponse
from querylab.schemas.user import DeleteResponse, UserCreate, UserResponse, UserUpdate

__all__ = [
    "DeleteResponse",
    "LoginRequest",
    "ProfileResponse",
    "RegisterRequest",
    "TokenResponse",
    "UserCreate",
    "UserResponse",
    "UserUpdate",
]
