# querylab Services
from querylab.services.auth import AuthService
from querylab.services.revocation import RevocationRegistry
from querylab.services.user import UserService

__all__ = [
    "AuthService",
    "RevocationRegistry",
    "UserService",
]
