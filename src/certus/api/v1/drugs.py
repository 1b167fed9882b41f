"""Drug data endpoints.

Thin HTTP wrappers over ``DrugInformationService``. Each route forwards its
parameters unchanged; validation and error typing happen in the service, and
a failed ``Result`` becomes a JSON error with the descriptor's status code.
"""

from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from certus.core.logging import get_logger
from certus.core.results import Result
from certus.dependencies import DrugServiceDep
from certus.schemas.common import ErrorDetail, ErrorResponse
from certus.schemas.drugs import BatchAnalysisRequest

logger = get_logger(__name__)

router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    429: {"model": ErrorResponse, "description": "openFDA rate limit exceeded"},
    502: {"model": ErrorResponse, "description": "openFDA returned an error"},
    504: {"model": ErrorResponse, "description": "openFDA timed out"},
}


def to_response(request: Request, result: Result[dict[str, Any]]) -> Any:
    """Return the success payload, or a JSON error for a failed result."""
    error = result.error
    if error is None:
        return result.data

    request_id = getattr(request.state, "request_id", None)
    logger.warning(
        "request_operation_failed",
        code=error.code,
        kind=error.kind,
        status_code=error.status_code,
        path=request.url.path,
    )
    body = ErrorResponse(error=ErrorDetail.from_descriptor(error, request_id))
    return JSONResponse(
        status_code=error.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


# =============================================================================
# Search Endpoints
# =============================================================================


@router.get(
    "/shortages",
    summary="Search drug shortages",
    description="Search the FDA drug shortage database, trying generic, brand and proprietary names in turn.",
    responses=ERROR_RESPONSES,
)
async def search_shortages(
    request: Request,
    service: DrugServiceDep,
    drug_name: str = Query("", description="Medication name"),
    limit: int = Query(10, description="Maximum results (1-50)"),
) -> Any:
    """Search current and resolved shortages for a drug."""
    return to_response(request, await service.search_shortages(drug_name, limit))


@router.get(
    "/adverse-events",
    summary="Search adverse event reports",
    responses=ERROR_RESPONSES,
)
async def search_adverse_events(
    request: Request,
    service: DrugServiceDep,
    drug_name: str = Query("", description="Medication name"),
    limit: int = Query(10, description="Maximum reports (1-50)"),
    detailed: bool = Query(False, description="Include individual reports"),
) -> Any:
    """Search FAERS adverse event reports for a drug."""
    return to_response(
        request, await service.search_adverse_events(drug_name, limit, detailed)
    )


@router.get(
    "/adverse-events/serious",
    summary="Search serious adverse event reports",
    responses=ERROR_RESPONSES,
)
async def search_serious_adverse_events(
    request: Request,
    service: DrugServiceDep,
    drug_name: str = Query("", description="Medication name"),
    limit: int = Query(10, description="Maximum reports (1-50)"),
    detailed: bool = Query(False, description="Include individual reports"),
) -> Any:
    """Search serious FAERS reports only. Never served from cache."""
    return to_response(
        request,
        await service.search_serious_adverse_events(drug_name, limit, detailed),
    )


@router.get(
    "/recalls",
    summary="Search drug recalls",
    responses=ERROR_RESPONSES,
)
async def search_recalls(
    request: Request,
    service: DrugServiceDep,
    drug_name: str = Query("", description="Medication name"),
    limit: int = Query(10, description="Maximum results (1-50)"),
) -> Any:
    """Search FDA enforcement reports. Never served from cache."""
    return to_response(request, await service.search_recalls(drug_name, limit))


# =============================================================================
# Label & Profile Endpoints
# =============================================================================


@router.get(
    "/label",
    summary="Get drug label information",
    responses=ERROR_RESPONSES,
)
async def get_label_info(
    request: Request,
    service: DrugServiceDep,
    drug_identifier: str = Query("", description="Drug name"),
    identifier_type: str | None = Query(
        None, description="generic_name, brand_name, proprietary_name or an openFDA field"
    ),
) -> Any:
    return to_response(
        request, await service.get_label_info(drug_identifier, identifier_type)
    )


@router.get(
    "/profile",
    summary="Get a combined label and shortage profile",
    responses=ERROR_RESPONSES,
)
async def get_medication_profile(
    request: Request,
    service: DrugServiceDep,
    drug_identifier: str = Query("", description="Drug name"),
    identifier_type: str | None = Query(None, description="Identifier type for the label lookup"),
) -> Any:
    return to_response(
        request, await service.get_medication_profile(drug_identifier, identifier_type)
    )


# =============================================================================
# Analysis Endpoints
# =============================================================================


@router.get(
    "/trends",
    summary="Analyze shortage trends",
    description="Summarize shortage episodes overlapping the last N months (1-60).",
    responses=ERROR_RESPONSES,
)
async def analyze_trends(
    request: Request,
    service: DrugServiceDep,
    drug_name: str = Query("", description="Medication name"),
    months_back: int = Query(12, description="Analysis window in months (1-60)"),
) -> Any:
    return to_response(request, await service.analyze_trends(drug_name, months_back))


@router.post(
    "/batch",
    summary="Analyze several drugs at once",
    description="Shortages, recalls and optional 6-month trends for up to 25 drugs.",
    responses=ERROR_RESPONSES,
)
async def batch_analyze(
    request: Request,
    body: BatchAnalysisRequest,
    service: DrugServiceDep,
) -> Any:
    """Run the batch pipeline; per-drug failures are reported inline."""
    logger.info(
        "batch_request",
        drug_count=len(body.drug_list),
        include_trends=body.include_trends,
    )
    return to_response(
        request, await service.batch_analyze(body.drug_list, body.include_trends)
    )
