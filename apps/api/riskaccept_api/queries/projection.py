"""Read-side projection of risk acceptances."""

import logging
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from riskaccept_api.models import (
    AcceptanceSource,
    AcceptanceStatus,
    Risk,
    RiskAcceptance,
    RiskAcceptanceComment,
    RiskAcceptanceHistory,
)
from riskaccept_api.workflow.errors import NotFound, ValidationFailed
from riskaccept_api.workflow.history import HistoryLedger

logger = logging.getLogger(__name__)


def _projection_options():
    return (
        selectinload(RiskAcceptance.risk).selectinload(Risk.controls),
        selectinload(RiskAcceptance.risk).selectinload(Risk.mitigations),
        selectinload(RiskAcceptance.linked_control),
        selectinload(RiskAcceptance.consumer_duty_outcome),
        selectinload(RiskAcceptance.proposer),
        selectinload(RiskAcceptance.approver),
        selectinload(RiskAcceptance.comments).selectinload(RiskAcceptanceComment.user),
        selectinload(RiskAcceptance.history).selectinload(RiskAcceptanceHistory.user),
    )


def _parse_filter(enum_cls, value, name: str) -> Optional[str]:
    if value is None or value == "":
        return None
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValidationFailed(f"Unknown {name} {value!r}")


class AcceptanceQueryService:
    """Loads acceptances with their linked risk, comments and history.

    Never writes. Every query uses populate_existing so a long-lived session
    still returns the latest committed status.
    """

    def __init__(self, db: Session):
        """Initialize query service."""
        self.db = db

    def list_acceptances(self, status=None, source=None) -> list[RiskAcceptance]:
        """List acceptances, newest first, optionally filtered by status and source."""
        status_value = _parse_filter(AcceptanceStatus, status, "status")
        source_value = _parse_filter(AcceptanceSource, source, "source")

        query = self.db.query(RiskAcceptance).options(*_projection_options()).populate_existing()
        if status_value:
            query = query.filter(RiskAcceptance.status == status_value)
        if source_value:
            query = query.filter(RiskAcceptance.source == source_value)

        results = query.order_by(RiskAcceptance.created_at.desc(), RiskAcceptance.reference.desc()).all()
        logger.debug(
            "Listed risk acceptances",
            extra={"status": status_value, "source": source_value, "count": len(results)},
        )
        return results

    def get_acceptance(self, acceptance_id: str) -> RiskAcceptance:
        """Single acceptance with the same projection as the list."""
        acceptance = (
            self.db.query(RiskAcceptance)
            .options(*_projection_options())
            .populate_existing()
            .filter(RiskAcceptance.id == acceptance_id)
            .first()
        )
        if not acceptance:
            raise NotFound(f"Risk acceptance {acceptance_id} not found")
        return acceptance

    def get_history(self, acceptance_id: str) -> list[RiskAcceptanceHistory]:
        """Ledger rows for an acceptance in commit order."""
        self._require_exists(acceptance_id)
        return HistoryLedger(self.db).entries(acceptance_id)

    def get_comments(self, acceptance_id: str) -> list[RiskAcceptanceComment]:
        """Comments for an acceptance, oldest first."""
        self._require_exists(acceptance_id)
        return (
            self.db.query(RiskAcceptanceComment)
            .filter(RiskAcceptanceComment.acceptance_id == acceptance_id)
            .order_by(RiskAcceptanceComment.created_at.asc(), RiskAcceptanceComment.id.asc())
            .all()
        )

    def _require_exists(self, acceptance_id: str) -> None:
        exists = self.db.query(RiskAcceptance.id).filter(RiskAcceptance.id == acceptance_id).first()
        if not exists:
            raise NotFound(f"Risk acceptance {acceptance_id} not found")
