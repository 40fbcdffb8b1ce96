"""Dispatch domain - jobs and route optimisation"""

from .router import router

__all__ = ["router"]
