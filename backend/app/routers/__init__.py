"""Revenue Intelligence Engine - API Routers"""
from .journeys import router as journeys_router
from .pages import router as pages_router
from .editing import router as editing_router
from .payments import router as payments_router
from .correlations import router as correlations_router
from .outcomes import router as outcomes_router

__all__ = [
    "journeys_router",
    "pages_router",
    "editing_router",
    "payments_router",
    "correlations_router",
    "outcomes_router",
]
