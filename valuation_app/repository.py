import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .db import ApiCallLog, Report

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class ReportRepository:
    """
    Report storage access used by the validation pipeline and intake.

    Args:
        db (Session): SQLAlchemy session, owned by the caller.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_report(self, report_id: str, user_id: str | None = None) -> Report | None:
        query = self.db.query(Report).filter(Report.id == report_id)
        # An owner filter turns "someone else's report" into "no report"
        if user_id is not None:
            query = query.filter(Report.user_id == user_id)
        return query.first()

    def find_recent_duplicate(
        self, vin: str, email: str, mileage: int, since: datetime
    ) -> Report | None:
        """
        Find the newest report with the same VIN, email and mileage created at or after `since`.
        """
        return (
            self.db.query(Report)
            .filter(
                Report.vin == vin,
                func.lower(Report.email) == email.lower(),
                Report.mileage == mileage,
                Report.created_at >= since,
            )
            .order_by(Report.created_at.desc())
            .first()
        )

    def insert_report(self, **fields) -> Report:
        report = Report(**fields)
        self.db.add(report)
        self.db.commit()
        self.db.refresh(report)
        return report

    def latest_report_for_user(self, user_id: str) -> Report | None:
        return (
            self.db.query(Report)
            .filter(Report.user_id == user_id)
            .order_by(Report.created_at.desc())
            .first()
        )

    def list_reports_by_email(self, email: str) -> list[Report]:
        return (
            self.db.query(Report)
            .filter(func.lower(Report.email) == email.lower())
            .order_by(Report.created_at.desc())
            .all()
        )

    def link_anonymous_reports(self, email: str, user_id: str) -> list[Report]:
        """
        Attach every still-anonymous report with this email to `user_id`.

        Reports that already have an owner are left untouched, so calling this
        twice links nothing the second time.

        Returns:
            list[Report]: The reports linked by this call.
        """
        reports = (
            self.db.query(Report)
            .filter(func.lower(Report.email) == email.lower(), Report.user_id.is_(None))
            .all()
        )
        for report in reports:
            report.user_id = user_id
        self.db.commit()
        return reports

    def save_valuation(self, report_id: str, valuation: dict) -> None:
        report = self.get_report(report_id)
        if report is None:
            return
        report.valuation_result = valuation
        report.status = "completed"
        self.db.commit()

    def log_api_call(
        self,
        report_id: str,
        provider: str,
        endpoint: str,
        success: bool,
        response_time_ms: int,
        cost: float,
        error_message: str | None = None,
    ) -> None:
        # Bookkeeping only: a failed log write never fails the request
        try:
            self.db.add(
                ApiCallLog(
                    report_id=report_id,
                    api_provider=provider,
                    endpoint=endpoint,
                    success=success,
                    response_time_ms=response_time_ms,
                    cost=cost,
                    error_message=error_message,
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Error logging API call for report: {report_id}")
