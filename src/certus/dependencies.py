"""FastAPI dependency injection container.

This module provides dependency injection functions for use with FastAPI's
Depends() pattern. Dependencies can be overridden through
``app.dependency_overrides`` in tests.
"""

from typing import Annotated

from fastapi import Depends, Request

from certus.config import Settings, get_settings
from certus.services.cache import CacheStore
from certus.services.drugs import DrugInformationService


# ========================================
# Settings Dependencies
# ========================================
def get_settings_from_request(request: Request) -> Settings:
    """Get settings from app state (set by the application factory).

    Args:
        request: The current request

    Returns:
        Settings: Application settings
    """
    return getattr(request.app.state, "settings", None) or get_settings()


# ========================================
# Service Dependencies
# ========================================
def get_drug_service(request: Request) -> DrugInformationService:
    """Get the shared drug information service.

    The service is normally created during lifespan startup. When the app is
    driven without a lifespan (e.g. through ASGITransport) it is created on
    first use and kept on app state.

    Args:
        request: The current request

    Returns:
        DrugInformationService: Service shared by all requests
    """
    service = getattr(request.app.state, "drug_service", None)
    if service is None:
        service = DrugInformationService.from_settings(get_settings_from_request(request))
        request.app.state.drug_service = service
    return service


def get_cache_store(
    service: Annotated[DrugInformationService, Depends(get_drug_service)],
) -> CacheStore:
    """Get the cache shared by the drug information service."""
    return service.cache


DrugServiceDep = Annotated[DrugInformationService, Depends(get_drug_service)]
CacheStoreDep = Annotated[CacheStore, Depends(get_cache_store)]
