# Task Management Auth API Routers
from taskauth.api.auth import router as auth_router
from taskauth.api.health import router as health_router

__all__ = ["auth_router", "health_router"]
