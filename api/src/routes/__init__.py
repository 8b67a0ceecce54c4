"""API routers."""

from .api_keys import router as api_keys_router
from .health import router as health_router
from .users import router as users_router

__all__ = ["api_keys_router", "health_router", "users_router"]
