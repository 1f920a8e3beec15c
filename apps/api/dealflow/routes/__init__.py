"""Route modules."""

from .auth import router as auth_router
from .internal import router as internal_router
from .projects import router as projects_router
from .users import router as users_router

__all__ = ["auth_router", "internal_router", "projects_router", "users_router"]
