"""
API package - FastAPI routes.
"""
from .webhook import router, get_dispatcher

__all__ = ["router", "get_dispatcher"]
