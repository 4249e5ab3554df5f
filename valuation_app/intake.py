"""
Report creation without authentication.

Identical submissions (same VIN, email and mileage) inside the idempotency
window return the report created first instead of a new one. The duplicate
lookup and the insert are not atomic, so two truly simultaneous requests can
still both insert.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from .db import Report, utcnow
from .email_utils import get_email_validation_error, sanitize_email
from .identity import SessionUser
from .vin_validator import get_vin_validation_error, sanitize_vin

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

DEFAULT_WINDOW_SECONDS = 300
MAX_MILEAGE = 999_999
ZIP_PATTERN = re.compile(r"[0-9]{5}")


class ReportIntakeError(Exception):
    """Submitted field failed validation."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


@dataclass
class IntakeResult:
    report: Report
    duplicate: bool = False


def parse_mileage(value) -> Optional[int]:
    """Accept an int or an integer string; None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"\s*-?[0-9]+\s*", value):
        return int(value)
    return None


def validate_submission(email, vin, mileage, zip_code) -> tuple[str, str, int, str]:
    """
    Sanitize and validate the four submitted fields, in order.

    Returns:
        tuple: Sanitized email, VIN, mileage and ZIP code.

    Raises:
        ReportIntakeError: For the first field that fails.
    """
    email_error = get_email_validation_error(email)
    if email_error:
        raise ReportIntakeError("email", email_error)

    vin_error = get_vin_validation_error(vin)
    if vin_error:
        raise ReportIntakeError("vin", f"VIN validation failed: {vin_error}")

    mileage_value = parse_mileage(mileage)
    if mileage_value is None or not 0 <= mileage_value <= MAX_MILEAGE:
        raise ReportIntakeError(
            "mileage", "Invalid mileage. Must be between 0 and 999,999"
        )

    if not isinstance(zip_code, str) or not ZIP_PATTERN.fullmatch(zip_code):
        raise ReportIntakeError("zip_code", "Invalid ZIP code. Must be 5 digits")

    return sanitize_email(email), sanitize_vin(vin), mileage_value, zip_code


async def create_anonymous_report(
    repository,
    email,
    vin,
    mileage,
    zip_code,
    session_user: Optional[SessionUser] = None,
    vin_decoder: Optional[Callable[[str], Awaitable[dict]]] = None,
    now: Optional[datetime] = None,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> IntakeResult:
    """
    Create a report for an unauthenticated submission, or replay a recent one.

    Args:
        repository: ReportRepository (or compatible) used for lookup and insert.
        email, vin, mileage, zip_code: Raw submitted values.
        session_user (SessionUser | None): Caller's session, if any. The report
            is attached to it only when its email matches the submitted one.
        vin_decoder: Optional coroutine returning vehicle_data for a VIN.
            Failures are logged and the report is created without it.
        now (datetime | None): Naive UTC time used for the duplicate window.
        window_seconds (int): Length of the idempotency window.

    Returns:
        IntakeResult: The report and whether it was an existing duplicate.
    """
    email, vin, mileage, zip_code = validate_submission(email, vin, mileage, zip_code)
    now = now or utcnow()

    logger.info(f"Anonymous report request for VIN: {vin[:8]}...")

    since = now - timedelta(seconds=window_seconds)
    existing = repository.find_recent_duplicate(vin, email, mileage, since)
    if existing is not None:
        logger.info(f"Returning existing report {existing.id} (idempotency check)")
        return IntakeResult(report=existing, duplicate=True)

    user_id = None
    if session_user is not None and session_user.email:
        if sanitize_email(session_user.email) == email:
            user_id = session_user.user_id
            logger.info(f"Linking new report to authenticated user: {user_id}")

    vehicle_data = None
    if vin_decoder is not None:
        try:
            vehicle_data = await vin_decoder(vin)
        except Exception:
            # enrichment is optional; the report is still created as pending
            logger.exception(f"VIN decode failed for VIN: {vin[:8]}...")

    report = repository.insert_report(
        vin=vin,
        mileage=mileage,
        zip_code=zip_code,
        email=email,
        status="pending",
        vehicle_data=vehicle_data,
        user_id=user_id,
        created_at=now,
    )
    logger.info(
        f"Report {report.id} created for VIN: {vin[:8]}... "
        f"(user: {user_id or 'anonymous'})"
    )
    return IntakeResult(report=report)
