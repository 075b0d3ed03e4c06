"""
API routes for vidconv
"""

from .health import router as health_router
from .media import router as media_router
from .conversions import router as conversions_router

__all__ = ["health_router", "media_router", "conversions_router"]
