"""
API package for vidconv
"""

from .app import create_app
from .websocket import broadcast_progress, broadcast_result, broadcast_status, websocket_connections

__all__ = [
    "create_app",
    "broadcast_progress",
    "broadcast_result",
    "broadcast_status",
    "websocket_connections",
]
