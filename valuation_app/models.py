from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .vin_validator import get_vin_validation_error, sanitize_vin


class VinPostRequest(BaseModel):
    vin: str

    @field_validator("vin")
    @classmethod
    def validate_vin(cls, vin):
        error = get_vin_validation_error(vin)
        if error:
            raise ValueError(error)
        return sanitize_vin(vin)


class VinPostResponse(BaseModel):
    vin_requested: str
    make: str
    model: str
    model_year: str
    body_class: str
    cached_result: bool


class VinInfoResponse(BaseModel):
    vin: str
    wmi: Optional[str] = None
    vds: Optional[str] = None
    vis: Optional[str] = None
    model_year: Optional[str] = None
    plant_code: Optional[str] = None
    is_valid: bool
    error: Optional[str] = None


class CreateAnonymousReportRequest(BaseModel):
    # Field checks happen in intake so each failure names its field with a 400
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    vin: Optional[str] = None
    mileage: Optional[Union[int, str]] = None
    zip_code: Optional[str] = Field(default=None, alias="zipCode")


class ReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    vin: str
    mileage: Optional[int] = None
    zip_code: Optional[str] = None
    email: Optional[str] = None
    status: Optional[str] = None
    vehicle_data: Optional[dict[str, Any]] = None
    valuation_result: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class CreateAnonymousReportResponse(BaseModel):
    success: bool
    report: ReportResponse
    message: Optional[str] = None


class LinkReportsResponse(BaseModel):
    success: bool
    count: int
    message: str


class CheckEmailRequest(BaseModel):
    email: Optional[str] = None


class CheckEmailResponse(BaseModel):
    success: bool
    has_reports: bool
    report_count: int
    message: str


class ValuationResponse(BaseModel):
    success: bool
    data: dict[str, Any]


class CanCreateReportResponse(BaseModel):
    can_create: bool
    is_first_report: bool = False
    last_report_created_at: Optional[datetime] = None
    hours_remaining: int = 0
    days_remaining: int = 0
    hours_remaining_after_days: int = 0
    next_available_date: Optional[datetime] = None
    error: Optional[str] = None
