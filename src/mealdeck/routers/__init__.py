"""API routers for the mealdeck application."""

from mealdeck.routers.recipes import router as recipes_router
from mealdeck.routers.shopping import router as shopping_router

__all__ = [
    "recipes_router",
    "shopping_router",
]
