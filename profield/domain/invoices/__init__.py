"""Invoices domain - invoices, payments, dashboard stats"""

from .router import dashboard_router, payments_router, router

__all__ = ["router", "payments_router", "dashboard_router"]
