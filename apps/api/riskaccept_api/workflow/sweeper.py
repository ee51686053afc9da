"""Expiry sweeper: lapses approved acceptances whose review date has passed."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from riskaccept_api.access.permissions import SYSTEM_ROLE
from riskaccept_api.models import AcceptanceStatus, RiskAcceptance
from riskaccept_api.utils.clock import to_naive_utc, utcnow
from riskaccept_api.utils.metrics import sweep_expired, sweep_failures
from riskaccept_api.workflow.engine import AcceptanceWorkflow
from riskaccept_api.workflow.errors import Conflict

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Drives APPROVED -> EXPIRED through the workflow engine.

    Safe to run repeatedly or from several workers at once: each row goes
    through the same status compare-and-swap, so a row already expired by
    another sweeper is skipped.
    """

    def __init__(self, db: Session, workflow: Optional[AcceptanceWorkflow] = None):
        """Initialize sweeper."""
        self.db = db
        self.workflow = workflow or AcceptanceWorkflow(db)

    def due(self, now: datetime) -> list[str]:
        """Ids of approved acceptances whose review date is before now."""
        rows = (
            self.db.query(RiskAcceptance.id)
            .filter(
                RiskAcceptance.status == AcceptanceStatus.APPROVED.value,
                RiskAcceptance.review_date.isnot(None),
                RiskAcceptance.review_date < now,
            )
            .order_by(RiskAcceptance.review_date.asc(), RiskAcceptance.id.asc())
            .all()
        )
        # End the read so each expiry runs in its own short transaction
        self.db.commit()
        return [row.id for row in rows]

    def sweep(self, now: Optional[datetime] = None, correlation_id: Optional[str] = None) -> int:
        """Expire every eligible acceptance. Returns the number expired by this run."""
        now = to_naive_utc(now) if now else utcnow()
        candidates = self.due(now)
        logger.info("Expiry sweep started", extra={"candidates": len(candidates), "now": now.isoformat()})

        expired = 0
        for acceptance_id in candidates:
            try:
                self.workflow.transition(
                    acceptance_id,
                    actor_id=None,
                    actor_role=SYSTEM_ROLE,
                    target_status=AcceptanceStatus.EXPIRED,
                    expected_status=AcceptanceStatus.APPROVED,
                    now=now,
                    correlation_id=correlation_id,
                )
            except Conflict:
                logger.info("Acceptance already moved on, skipping", extra={"acceptance_id": acceptance_id})
                continue
            except Exception as e:
                sweep_failures.inc()
                logger.error(
                    f"Failed to expire acceptance: {e}",
                    extra={"acceptance_id": acceptance_id},
                    exc_info=True,
                )
                continue
            expired += 1
            sweep_expired.inc()

        logger.info("Expiry sweep finished", extra={"expired": expired, "candidates": len(candidates)})
        return expired
