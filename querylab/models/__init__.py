# querylab Models
from querylab.models.base import BaseModel
from querylab.models.revoked_token import RevokedToken
from querylab.models.user import User

__all__ = [
    "BaseModel",
    "RevokedToken",
    "User",
]
