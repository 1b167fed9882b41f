"""API v1 main router.

Aggregates all v1 API routers into a single router for inclusion in the app.
"""

from fastapi import APIRouter

from certus.api.v1.drugs import router as drugs_router

router = APIRouter()

# Include sub-routers
router.include_router(drugs_router, prefix="/drugs", tags=["Drugs"])
