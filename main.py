import logging
import time
from dataclasses import asdict
from functools import partial

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.openapi.docs import get_swagger_ui_html
from sqlalchemy.orm import Session
from starlette.responses import HTMLResponse

import valuation_app.models as model
from valuation_app.config import settings
from valuation_app.db import get_db
from valuation_app.email_utils import require_valid_email
from valuation_app.identity import SessionUser, get_current_user, get_optional_user
from valuation_app.intake import ReportIntakeError, create_anonymous_report
from valuation_app.quota import check_weekly_quota
from valuation_app.rate_limit import RateLimiter, RateLimitExceeded, rate_limit
from valuation_app.report_validation import ErrorCode, ReportValidator
from valuation_app.repository import ReportRepository
from valuation_app.valuation import ValuationError, fetch_valuation
from valuation_app.vin_validator import (
    extract_vin_info,
    get_vin_validation_error,
    sanitize_vin,
)
from valuation_app.vpic import decode_vehicle, lookup_vin

ONE_MINUTE_MS = 60 * 1000
ONE_HOUR_MS = 60 * ONE_MINUTE_MS

# Anonymous report creation: 10 per hour per client IP
REPORT_CREATION_LIMIT = 10
# Paid valuation lookups: 10 per hour per user
VALUATION_LIMIT = 10
# Everything else: 100 per minute per client IP
API_LIMIT = 100

report_creation_limiter = RateLimiter(interval=ONE_HOUR_MS, unique_token_per_interval=500)
valuation_limiter = RateLimiter(interval=ONE_HOUR_MS, unique_token_per_interval=500)
api_limiter = RateLimiter(interval=ONE_MINUTE_MS, unique_token_per_interval=500)

rate_limits_enabled = not settings.disable_rate_limit

# Transport status for each pipeline error code
ERROR_STATUS = {
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.PAYMENT_REQUIRED: 402,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_VIN: 400,
    ErrorCode.INVALID_MILEAGE: 400,
    ErrorCode.INVALID_ZIP: 400,
    ErrorCode.VALIDATION_ERROR: 500,
}

VALUATION_PROVIDER = "marketcheck"
VALUATION_ENDPOINT = "/v2/predict/car/us/marketcheck_price/comparables"

app = FastAPI(title="Vehicle Valuation API")
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def get_repository(db: Session = Depends(get_db)) -> ReportRepository:
    return ReportRepository(db)


def get_report_validator(
    repository: ReportRepository = Depends(get_repository),
) -> ReportValidator:
    return ReportValidator(
        repository, disable_payment_check=settings.disable_payment_check
    )


@app.post(
    "/lookup",
    response_model=model.VinPostResponse,
    dependencies=[Depends(rate_limit(api_limiter, API_LIMIT, rate_limits_enabled))],
)
async def add_to_cache(
    vin_request: model.VinPostRequest, db: Session = Depends(get_db)
):
    """
    Endpoint to decode a VIN and add it to the database if not already present.

    Args:
        vin_request (model.VinPostRequest): The VIN to decode, already checksum-validated.
        db (Session): The database session, injected via dependency injection.

    Returns:
        model.VinPostResponse: The response model containing VIN details.
    """
    logger.info("Received VIN lookup request")

    record, cached = await lookup_vin(vin_request.vin, db)

    return model.VinPostResponse(
        vin_requested=vin_request.vin,
        make=record.make,
        model=record.model,
        model_year=record.model_year,
        body_class=record.body_class,
        cached_result=cached,
    )


@app.get(
    "/vin/{vin}",
    response_model=model.VinInfoResponse,
    dependencies=[Depends(rate_limit(api_limiter, API_LIMIT, rate_limits_enabled))],
)
async def vin_info(vin: str):
    """
    Endpoint to break a VIN into its sections and report any validation error.
    No external API is called.
    """
    error = get_vin_validation_error(vin)
    info = extract_vin_info(vin)
    if info is None:
        return model.VinInfoResponse(vin=sanitize_vin(vin), is_valid=False, error=error)

    return model.VinInfoResponse(
        vin=info.vin,
        wmi=info.wmi,
        vds=info.vds,
        vis=info.vis,
        model_year=info.model_year,
        plant_code=info.plant_code,
        is_valid=info.is_valid,
        error=error,
    )


@app.post(
    "/reports/create-anonymous",
    response_model=model.CreateAnonymousReportResponse,
    dependencies=[
        Depends(
            rate_limit(report_creation_limiter, REPORT_CREATION_LIMIT, rate_limits_enabled)
        )
    ],
)
async def create_anonymous(
    report_request: model.CreateAnonymousReportRequest,
    repository: ReportRepository = Depends(get_repository),
    session_user: SessionUser | None = Depends(get_optional_user),
):
    """
    Endpoint to create a report without authentication.

    A repeat of the same VIN, email and mileage within the idempotency window
    returns the existing report.

    Args:
        report_request (model.CreateAnonymousReportRequest): email, vin, mileage and zipCode.
        repository (ReportRepository): Report storage, injected via dependency injection.
        session_user (SessionUser | None): The caller's session, if signed in.

    Returns:
        model.CreateAnonymousReportResponse: The created or existing report.
    """
    logger.info("Received anonymous report request")

    try:
        result = await create_anonymous_report(
            repository,
            email=report_request.email,
            vin=report_request.vin,
            mileage=report_request.mileage,
            zip_code=report_request.zip_code,
            session_user=session_user,
            vin_decoder=partial(decode_vehicle, db=repository.db),
            window_seconds=settings.idempotency_window_seconds,
        )
    except ReportIntakeError as e:
        logger.warning(f"Anonymous report rejected: {e.field} - {e.message}")
        raise HTTPException(
            status_code=400, detail={"error": e.message, "field": e.field}
        ) from e

    return model.CreateAnonymousReportResponse(
        success=True,
        report=model.ReportResponse.model_validate(result.report),
        message=(
            "Returning existing recent report (idempotency check)"
            if result.duplicate
            else None
        ),
    )


@app.post("/reports/link", response_model=model.LinkReportsResponse)
async def link_reports(
    user: SessionUser = Depends(get_current_user),
    repository: ReportRepository = Depends(get_repository),
):
    """
    Endpoint to attach the caller's anonymous reports to their account.

    Reports are matched on the account email. Reports that already belong to
    an account are never reassigned.
    """
    if not user.email:
        raise HTTPException(status_code=400, detail="Account email is required")

    logger.info(f"Linking reports for user {user.user_id}")
    linked = repository.link_anonymous_reports(user.email, user.user_id)
    count = len(linked)
    logger.info(f"Linked {count} report(s) to user {user.user_id}")

    return model.LinkReportsResponse(
        success=True,
        count=count,
        message=f"Linked {count} report(s) to your account",
    )


@app.post(
    "/reports/check-email",
    response_model=model.CheckEmailResponse,
    dependencies=[Depends(rate_limit(api_limiter, API_LIMIT, rate_limits_enabled))],
)
async def check_email(
    email_request: model.CheckEmailRequest,
    repository: ReportRepository = Depends(get_repository),
):
    """
    Endpoint to tell whether an email already has reports.
    """
    try:
        email = require_valid_email(email_request.email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    reports = repository.list_reports_by_email(email)
    has_reports = len(reports) > 0

    return model.CheckEmailResponse(
        success=True,
        has_reports=has_reports,
        report_count=len(reports),
        message="Email has existing reports" if has_reports else "Email is new to the system",
    )


@app.get("/reports/can-create", response_model=model.CanCreateReportResponse)
async def can_create_report(
    user: SessionUser = Depends(get_current_user),
    repository: ReportRepository = Depends(get_repository),
):
    """
    Endpoint to tell whether the caller may create a report under the weekly quota.
    """
    status = check_weekly_quota(repository, user.user_id)
    return model.CanCreateReportResponse(**asdict(status))


@app.post("/reports/{report_id}/fetch-valuation", response_model=model.ValuationResponse)
async def fetch_report_valuation(
    report_id: str,
    request: Request,
    user: SessionUser = Depends(get_current_user),
    repository: ReportRepository = Depends(get_repository),
    validator: ReportValidator = Depends(get_report_validator),
):
    """
    Endpoint to fetch a paid market valuation for a report.

    The report must belong to the caller, be paid for, and hold a valid VIN,
    mileage and ZIP code before the valuation provider is called.

    Args:
        report_id (str): Report identifier.
        request (Request): Incoming request, used for rate limiting.
        user (SessionUser): The authenticated caller.
        repository (ReportRepository): Report storage.
        validator (ReportValidator): Pre-call validation pipeline.

    Returns:
        model.ValuationResponse: The valuation returned by the provider.
    """
    logger.info(f"Valuation request for report {report_id} by user {user.user_id}")

    if rate_limits_enabled:
        try:
            valuation_limiter.check(request, VALUATION_LIMIT, token=user.user_id)
        except RateLimitExceeded as e:
            raise HTTPException(
                status_code=429,
                detail="Too many valuation requests. Please try again in an hour.",
            ) from e

    validation = validator.validate_before_expensive_call(report_id, user.user_id)
    if not validation.valid:
        raise HTTPException(
            status_code=ERROR_STATUS[validation.error_code],
            detail=validation.to_dict(),
        )

    report_data = validation.data
    start = time.monotonic()
    try:
        valuation = await fetch_valuation(
            report_data.vin, report_data.mileage, report_data.zip_code
        )
    except ValuationError as e:
        repository.log_api_call(
            report_id,
            VALUATION_PROVIDER,
            VALUATION_ENDPOINT,
            success=False,
            response_time_ms=int((time.monotonic() - start) * 1000),
            cost=0.0,
            error_message=str(e),
        )
        raise HTTPException(status_code=502, detail=str(e)) from e

    repository.save_valuation(report_id, valuation)
    repository.log_api_call(
        report_id,
        VALUATION_PROVIDER,
        VALUATION_ENDPOINT,
        success=True,
        response_time_ms=int((time.monotonic() - start) * 1000),
        cost=settings.valuation_call_cost,
    )
    logger.info(f"Valuation stored for report {report_id}")

    return model.ValuationResponse(success=True, data=valuation)


@app.get("/", response_class=HTMLResponse)
async def root():
    """
    Default endpoint that redirects the user to the Swagger UI.

    Returns:
        HTMLResponse: An HTMLResponse object that represents the Swagger UI page.
    """
    return get_swagger_ui_html(openapi_url="/openapi.json", title="API Docs")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
