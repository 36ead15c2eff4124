"""
API Routers / API 路由
"""

from .context import router as context_router
from .status import router as status_router

__all__ = [
    "context_router",
    "status_router",
]
