"""
Weekly report quota for signed-in users.

A user may create one report every 168 hours, counted from the creation time
of their most recent report. A storage fault fails open so a database hiccup
never blocks report creation.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .db import utcnow

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

WEEKLY_LIMIT_HOURS = 168


@dataclass(frozen=True)
class QuotaStatus:
    can_create: bool
    is_first_report: bool = False
    last_report_created_at: Optional[datetime] = None
    hours_remaining: int = 0
    days_remaining: int = 0
    hours_remaining_after_days: int = 0
    next_available_date: Optional[datetime] = None
    error: Optional[str] = None


def check_weekly_quota(repository, user_id: str, now: Optional[datetime] = None) -> QuotaStatus:
    """
    Tell whether `user_id` may create another report.

    Args:
        repository: Object providing `latest_report_for_user(user_id)`.
        user_id (str): The signed-in user.
        now (datetime, optional): Naive UTC reference time; defaults to now.

    Returns:
        QuotaStatus: When blocked, carries the time left and the next date
        a report can be created.
    """
    now = now or utcnow()

    try:
        last_report = repository.latest_report_for_user(user_id)
    except SQLAlchemyError:
        logger.exception(f"Weekly quota check failed for user: {user_id}")
        return QuotaStatus(can_create=True, error="Check failed")

    if last_report is None:
        logger.info(f"First report for user: {user_id}")
        return QuotaStatus(can_create=True, is_first_report=True)

    last_created = last_report.created_at
    hours_since = (now - last_created).total_seconds() / 3600
    can_create = hours_since >= WEEKLY_LIMIT_HOURS

    hours_remaining = max(0.0, WEEKLY_LIMIT_HOURS - hours_since)
    days_remaining = math.floor(hours_remaining / 24)
    hours_remaining_after_days = math.ceil(hours_remaining % 24)

    if can_create:
        logger.info(f"User {user_id} allowed, {round(hours_since)}h since last report")
    else:
        logger.warning(
            f"User {user_id} blocked for {math.ceil(hours_remaining)}h by the weekly quota"
        )

    return QuotaStatus(
        can_create=can_create,
        last_report_created_at=last_created,
        hours_remaining=math.ceil(hours_remaining),
        days_remaining=days_remaining,
        hours_remaining_after_days=hours_remaining_after_days,
        next_available_date=last_created + timedelta(hours=WEEKLY_LIMIT_HOURS),
    )
