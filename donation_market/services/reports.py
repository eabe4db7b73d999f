import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from donation_market.db import commit
from donation_market.errors import Forbidden, NotFound, ValidationError
from donation_market.models.db_models import Listing, Report, User
from donation_market.services.listings import is_admin

logger = logging.getLogger(__name__)

REPORT_STATUSES = {"pending", "resolved", "dismissed"}


class ReportService:
    def __init__(self, db: Session):
        self.db = db

    def submit(
        self,
        reporter_id: int,
        reason: str,
        details: Optional[str] = None,
        listing_id: Optional[int] = None,
        target_user_id: Optional[int] = None,
    ) -> Report:
        if not reason or not reason.strip():
            raise ValidationError("Reason is required.")
        if listing_id is None and target_user_id is None:
            raise ValidationError("A report needs a listing or a user to report.")
        if listing_id is not None and self.db.get(Listing, listing_id) is None:
            raise ValidationError("Reported listing not found.")
        if target_user_id is not None and self.db.get(User, target_user_id) is None:
            raise ValidationError("Reported user not found.")

        report = Report(
            reporter_id=reporter_id,
            reason=reason.strip(),
            details=details,
            reported_listing_id=listing_id,
            reported_user_id=target_user_id,
            status="pending",
        )
        self.db.add(report)
        commit(self.db, "submitting report")
        self.db.refresh(report)
        return report

    def list_reports(self, actor_role: Optional[str]) -> List[Report]:
        if not is_admin(actor_role):
            raise Forbidden("Forbidden: administrators only.")
        return self.db.query(Report).order_by(Report.created_at.desc(), Report.id.desc()).all()

    def update_status(self, actor_role: Optional[str], report_id: int, status: str) -> Report:
        if not is_admin(actor_role):
            raise Forbidden("Forbidden: administrators only.")
        if status not in REPORT_STATUSES:
            raise ValidationError(f"Unknown report status: {status}")
        report = self.db.get(Report, report_id)
        if report is None:
            raise NotFound(f"Report {report_id} not found.")
        report.status = status
        commit(self.db, "updating report")
        self.db.refresh(report)
        logger.info("Report %s marked %s", report_id, status)
        return report
