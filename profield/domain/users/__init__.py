"""Users domain - authentication, user administration, organization settings"""

from .router import auth_router, router, settings_router

__all__ = ["auth_router", "router", "settings_router"]
