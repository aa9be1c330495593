# authcore API routers
from authcore.api.auth import router as auth_router
from authcore.api.health import router as health_router

__all__ = ["auth_router", "health_router"]
