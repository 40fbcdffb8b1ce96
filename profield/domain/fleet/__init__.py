"""Fleet domain - gas cards and vehicle tracking"""

from .router import assignments_router, cards_router, providers_router, vehicles_router

__all__ = ["providers_router", "cards_router", "assignments_router", "vehicles_router"]
