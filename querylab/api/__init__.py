"""querylab API routers."""

from querylab.api.auth import router as auth_router
from querylab.api.health import router as health_router
from querylab.api.users import router as users_router

__all__ = [
    "auth_router",
    "health_router",
    "users_router",
]
