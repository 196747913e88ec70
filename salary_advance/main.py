"""
FastAPI application serving the salary advance engine.
Provides REST API endpoints for eligibility, submission, decisions and reporting.
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from salary_advance.config import settings
from salary_advance.eligibility import EligibilitySummary
from salary_advance.errors import (
    IllegalTransition,
    NotPermitted,
    Rejected,
    RequestNotFound,
    StoreUnavailable,
    UnknownPolicy,
    UnknownRequester,
)
from salary_advance.models import BenefitRequest, QueryFilters, RequestStatus, Role
from salary_advance.policy_catalog import default_catalog
from salary_advance.service import BenefitRequestService, Report
from salary_advance.snowflake_client import build_store
from salary_advance.utils.request_context import clear_request_context, set_request_context

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Pydantic models for API
class SubmitRequest(BaseModel):
    """Request model for a new advance."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "policy_type": "capped-annual-once",
                "amount": "7500.00",
                "installment_count": 3,
                "note": "School fees",
            }
        }
    )

    policy_type: str = Field(..., description="Benefit policy to request under")
    amount: Decimal = Field(..., description="Requested amount")
    installment_count: int = Field(..., description="Number of repayment installments")
    note: str | None = Field(None, description="Optional note for the manager")


class DecisionRequest(BaseModel):
    """Manager decision payload."""

    note: str | None = Field(None, description="Decision note; a default is applied if blank")
    start_month: str | None = Field(
        None, pattern=r"^\d{4}-\d{2}$", description="Month repayment begins (YYYY-MM)"
    )


class BenefitRequestOut(BaseModel):
    """A benefit request as returned by the API."""

    id: int
    requester_id: int
    requester_name: str | None = None
    policy_type: str
    amount: Decimal
    installment_count: int
    note: str | None = None
    status: RequestStatus
    decision_note: str | None = None
    decided_by: int | None = None
    created_at: datetime
    decided_at: datetime | None = None
    start_month: date | None = None
    needs_manual_review: bool = False


class PolicyEligibilityOut(BaseModel):
    policy_type: str
    used_count: int
    used: bool
    remaining: int
    max_amount_allowed: Decimal | None
    allowed_installment_counts: list[int]
    blocked: bool
    block_reason: str | None = None
    requires_manual_review: bool = False


class EligibilityOut(BaseModel):
    requester_id: int
    year: int
    has_active_loan: bool
    policies: list[PolicyEligibilityOut]


class ReportOut(BaseModel):
    rows: list[BenefitRequestOut]
    kpi: dict
    requesters: list[dict] = []


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    environment: str
    store: str
    store_circuit_breaker: dict | None = None


def request_out(request: BenefitRequest) -> BenefitRequestOut:
    return BenefitRequestOut(**request.__dict__)


def eligibility_out(summary: EligibilitySummary) -> EligibilityOut:
    return EligibilityOut(
        requester_id=summary.requester_id,
        year=summary.year,
        has_active_loan=summary.has_active_loan,
        policies=[
            PolicyEligibilityOut(
                policy_type=entry.policy_type,
                used_count=entry.used_count,
                used=entry.used,
                remaining=entry.remaining,
                max_amount_allowed=entry.max_amount_allowed,
                allowed_installment_counts=list(entry.allowed_installment_counts),
                blocked=entry.blocked,
                block_reason=entry.block_reason,
                requires_manual_review=entry.requires_manual_review,
            )
            for entry in summary.policies.values()
        ],
    )


def report_out(report: Report) -> ReportOut:
    return ReportOut(
        rows=[request_out(row) for row in report.rows],
        kpi=report.kpi.to_dict(),
        requesters=report.requesters,
    )


def transition_out(result: BenefitRequest | IllegalTransition) -> BenefitRequestOut:
    if isinstance(result, IllegalTransition):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "illegal_transition",
                "current": result.current,
                "attempted": result.attempted,
                "message": result.message,
            },
        )
    return request_out(result)


def parse_start_month(value: str | None) -> date | None:
    if not value:
        return None
    year, month = value.split("-")
    try:
        return date(int(year), int(month), 1)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid start_month: {value}") from e


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the catalog and store once per process."""
    logger.info("Starting Salary Advance API")
    logger.info(f"Environment: {settings.environment}")

    store = build_store()
    app.state.service = BenefitRequestService(default_catalog(), store)
    logger.info(f"Request store: {type(store).__name__}")

    yield

    logger.info("Shutting down Salary Advance API")
    if hasattr(store, "close"):
        store.close()


# Create FastAPI app
app = FastAPI(
    title="Salary Advance API",
    description="Eligibility, submission and approval of salary advance requests",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def identity(
    x_requester_id: int | None = Header(None),
    x_role: Role | None = Header(None),
) -> AsyncIterator[None]:
    """Bind the authenticated caller for the duration of the request."""
    set_request_context(x_requester_id, x_role)
    try:
        yield
    finally:
        clear_request_context()


def get_service(request: Request) -> BenefitRequestService:
    return request.app.state.service


# Error mapping


@app.exception_handler(NotPermitted)
async def not_permitted_handler(request: Request, exc: NotPermitted):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(UnknownPolicy)
async def unknown_policy_handler(request: Request, exc: UnknownPolicy):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(UnknownRequester)
@app.exception_handler(RequestNotFound)
async def not_found_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error(f"Request store unavailable: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Request store unavailable. Please try again."},
        headers={"Retry-After": "5"},
    )


# API Endpoints


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {"message": "Salary Advance API", "version": "1.0.0", "docs": "/docs"}


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(service: BenefitRequestService = Depends(get_service)):
    """
    Health check endpoint.
    Returns service status and, for Snowflake, the circuit breaker state.
    """
    store = service.store
    breaker = store.get_circuit_breaker_state() if hasattr(store, "circuit_breaker") else None
    return HealthResponse(
        status="healthy",
        environment=settings.environment,
        store=type(store).__name__,
        store_circuit_breaker=breaker,
    )


@app.get("/ready")
def ready():
    return {"status": "ready"}


@app.get("/policies", tags=["Policies"])
async def list_policies(service: BenefitRequestService = Depends(get_service)):
    """Policy catalog, in declaration order."""
    return [
        {
            "policy_type": policy.policy_type,
            "max_percent_of_salary": policy.max_percent_of_salary,
            "max_occurrences_per_year": policy.max_occurrences_per_year,
            "allowed_installment_counts": list(policy.allowed_installment_counts),
            "description": policy.description,
        }
        for policy in service.catalog.all()
    ]


@app.get(
    "/requesters/{requester_id}/eligibility",
    response_model=EligibilityOut,
    tags=["Requests"],
    dependencies=[Depends(identity)],
)
async def requester_eligibility(
    requester_id: int,
    year: int | None = Query(None),
    service: BenefitRequestService = Depends(get_service),
):
    """Which policies the requester may use now, and how much they may request."""
    return eligibility_out(service.request_eligibility(requester_id, year))


@app.post(
    "/requesters/{requester_id}/requests",
    response_model=BenefitRequestOut,
    status_code=status.HTTP_201_CREATED,
    tags=["Requests"],
    dependencies=[Depends(identity)],
)
async def submit_request(
    requester_id: int,
    body: SubmitRequest,
    service: BenefitRequestService = Depends(get_service),
):
    """
    Submit a new advance request.

    A refused submission returns 422 with the single first-failed reason:

    ```json
    {"detail": {"error": "rejected", "reason": "amount exceeds maximum allowed"}}
    ```
    """
    result = service.submit_request(
        requester_id, body.policy_type, body.amount, body.installment_count, body.note
    )
    if isinstance(result, Rejected):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "rejected", "reason": result.message},
        )
    return request_out(result)


@app.get(
    "/requesters/{requester_id}/requests",
    response_model=ReportOut,
    tags=["Requests"],
    dependencies=[Depends(identity)],
)
async def my_requests(
    requester_id: int,
    month: str | None = Query(None, description="YYYY-MM"),
    status_filter: RequestStatus | None = Query(None, alias="status"),
    q: str | None = Query(None),
    service: BenefitRequestService = Depends(get_service),
):
    """The requester's own requests with KPIs for the selected month."""
    filters = QueryFilters(status=status_filter, month=month, text=q)
    return report_out(service.my_requests(requester_id, filters))


@app.post(
    "/requests/{request_id}/cancel",
    response_model=BenefitRequestOut,
    tags=["Requests"],
    dependencies=[Depends(identity)],
)
async def cancel_request(request_id: int, service: BenefitRequestService = Depends(get_service)):
    return transition_out(service.cancel(request_id))


@app.get(
    "/requests",
    response_model=ReportOut,
    tags=["Approvals"],
    dependencies=[Depends(identity)],
)
async def report(
    month: str | None = Query(None, description="YYYY-MM"),
    status_filter: RequestStatus | None = Query(None, alias="status"),
    requester_id: int | None = Query(None, alias="requesterId"),
    q: str | None = Query(None),
    service: BenefitRequestService = Depends(get_service),
):
    """Manager dashboard: filtered rows plus KPIs over month + requester."""
    filters = QueryFilters(status=status_filter, requester_id=requester_id, month=month, text=q)
    return report_out(service.report(filters))


@app.get(
    "/requests/pending",
    response_model=list[BenefitRequestOut],
    tags=["Approvals"],
    dependencies=[Depends(identity)],
)
async def pending_requests(service: BenefitRequestService = Depends(get_service)):
    return [request_out(row) for row in service.pending_requests()]


@app.patch(
    "/requests/{request_id}/approve",
    response_model=BenefitRequestOut,
    tags=["Approvals"],
    dependencies=[Depends(identity)],
)
async def approve_request(
    request_id: int,
    body: DecisionRequest | None = None,
    service: BenefitRequestService = Depends(get_service),
):
    body = body or DecisionRequest()
    result = service.decide(
        request_id, approve=True, note=body.note, start_month=parse_start_month(body.start_month)
    )
    return transition_out(result)


@app.patch(
    "/requests/{request_id}/reject",
    response_model=BenefitRequestOut,
    tags=["Approvals"],
    dependencies=[Depends(identity)],
)
async def reject_request(
    request_id: int,
    body: DecisionRequest | None = None,
    service: BenefitRequestService = Depends(get_service),
):
    body = body or DecisionRequest()
    return transition_out(service.decide(request_id, approve=False, note=body.note))


@app.patch(
    "/requests/{request_id}/close",
    response_model=BenefitRequestOut,
    tags=["Approvals"],
    dependencies=[Depends(identity)],
)
async def close_request(request_id: int, service: BenefitRequestService = Depends(get_service)):
    """Mark an approved request as settled once repayment is complete."""
    return transition_out(service.close(request_id))


if __name__ == "__main__":
    uvicorn.run(
        "salary_advance.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 8080)),
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
