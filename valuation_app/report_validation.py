"""
Checks that gate a paid external valuation call.

Ownership is confirmed before payment state is revealed, and payment before
stored report fields are trusted for a billed lookup. Each check returns a
ValidationResult instead of raising; unexpected storage faults are reported
as VALIDATION_ERROR.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .vin_validator import is_valid_vin, sanitize_vin

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

MAX_MILEAGE = 999_999
ZIP_PATTERN = re.compile(r"[0-9]{5}")


class ErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_VIN = "INVALID_VIN"
    INVALID_MILEAGE = "INVALID_MILEAGE"
    INVALID_ZIP = "INVALID_ZIP"
    VALIDATION_ERROR = "VALIDATION_ERROR"


@dataclass(frozen=True)
class ReportData:
    vin: str
    mileage: int
    zip_code: str


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    data: Optional[ReportData] = None

    @classmethod
    def ok(cls, data: Optional[ReportData] = None) -> "ValidationResult":
        return cls(valid=True, data=data)

    @classmethod
    def fail(cls, error: str, error_code: ErrorCode) -> "ValidationResult":
        return cls(valid=False, error=error, error_code=error_code)

    def to_dict(self) -> dict:
        if self.valid:
            payload = {"valid": True}
            if self.data is not None:
                payload["data"] = {
                    "vin": self.data.vin,
                    "mileage": self.data.mileage,
                    "zip_code": self.data.zip_code,
                }
            return payload
        return {"valid": False, "error": self.error, "errorCode": self.error_code.value}


def first_failure(*checks: Callable[[], ValidationResult]) -> ValidationResult:
    """
    Run checks in order and stop at the first invalid result.

    Later checks are not called once one fails. If all pass, the last
    result is returned so data from the final check is preserved.
    """
    result = ValidationResult.ok()
    for check in checks:
        result = check()
        if not result.valid:
            return result
    return result


class ReportValidator:
    """
    Validation pipeline over a report repository.

    Args:
        repository: Object providing `get_report(report_id, user_id=None)`.
        disable_payment_check (bool): Skip payment verification entirely.
            Intended for development and staging only.
    """

    def __init__(self, repository, disable_payment_check: bool = False):
        self.repository = repository
        self.disable_payment_check = disable_payment_check

    def validate_ownership(self, report_id: str, user_id: str) -> ValidationResult:
        # Missing and foreign reports look the same so existence is not leaked
        if not user_id:
            return ValidationResult.fail(
                "Report not found or access denied", ErrorCode.UNAUTHORIZED
            )

        try:
            report = self.repository.get_report(report_id, user_id=user_id)
        except Exception:
            logger.exception(f"Report ownership check failed for report: {report_id}")
            return ValidationResult.fail("Validation failed", ErrorCode.VALIDATION_ERROR)

        if report is None:
            return ValidationResult.fail(
                "Report not found or access denied", ErrorCode.UNAUTHORIZED
            )
        return ValidationResult.ok()

    def validate_payment_status(self, report_id: str) -> ValidationResult:
        if self.disable_payment_check:
            logger.warning("Payment check SKIPPED (disable_payment_check is set)")
            return ValidationResult.ok()

        try:
            report = self.repository.get_report(report_id)
        except Exception:
            logger.exception(f"Payment status check failed for report: {report_id}")
            return ValidationResult.fail("Validation failed", ErrorCode.VALIDATION_ERROR)

        if report is None:
            return ValidationResult.fail("Report not found", ErrorCode.NOT_FOUND)

        has_payment = report.stripe_payment_id or report.lemon_squeezy_payment_id
        if not has_payment or not report.price_paid:
            return ValidationResult.fail("Payment not confirmed", ErrorCode.PAYMENT_REQUIRED)

        return ValidationResult.ok()

    def validate_report_data(self, report_id: str) -> ValidationResult:
        """
        Re-check the stored VIN, mileage and ZIP code before they are sent out.

        Returns:
            ValidationResult: On success, `data` holds the sanitized VIN and
            the stored mileage and ZIP code.
        """
        try:
            report = self.repository.get_report(report_id)
        except Exception:
            logger.exception(f"Report data check failed for report: {report_id}")
            return ValidationResult.fail("Validation failed", ErrorCode.VALIDATION_ERROR)

        if report is None:
            return ValidationResult.fail("Report not found", ErrorCode.NOT_FOUND)

        vin = sanitize_vin(report.vin)
        if not is_valid_vin(vin):
            return ValidationResult.fail("Invalid VIN format", ErrorCode.INVALID_VIN)

        mileage = report.mileage
        if (
            mileage is None
            or isinstance(mileage, bool)
            or not isinstance(mileage, int)
            or not 0 <= mileage <= MAX_MILEAGE
        ):
            return ValidationResult.fail("Invalid mileage", ErrorCode.INVALID_MILEAGE)

        zip_code = report.zip_code
        if not isinstance(zip_code, str) or not ZIP_PATTERN.fullmatch(zip_code):
            return ValidationResult.fail("Invalid ZIP code", ErrorCode.INVALID_ZIP)

        return ValidationResult.ok(ReportData(vin=vin, mileage=mileage, zip_code=zip_code))

    def validate_before_expensive_call(self, report_id: str, user_id: str) -> ValidationResult:
        """
        Run ownership, payment and data checks in that order.

        This is the only gate callers should use before spending money on a
        third-party valuation request.
        """
        result = first_failure(
            lambda: self.validate_ownership(report_id, user_id),
            lambda: self.validate_payment_status(report_id),
            lambda: self.validate_report_data(report_id),
        )
        if not result.valid:
            logger.warning(
                f"Validation failed for report '{report_id}': {result.error_code.value}"
            )
        return result
