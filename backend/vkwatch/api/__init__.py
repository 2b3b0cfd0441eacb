from .keywords import router as keywords_router
from .watchlist import router as watchlist_router

__all__ = [
    "keywords_router",
    "watchlist_router",
]
