"""History ledger for risk acceptances."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from riskaccept_api.models import HistoryAction, RiskAcceptanceHistory
from riskaccept_api.utils.clock import utcnow

logger = logging.getLogger(__name__)

DETAILS_PREVIEW_LENGTH = 100

# Rows written for comments and content edits carry the unchanged status
ANNOTATION_ACTIONS = frozenset({HistoryAction.UPDATED.value, HistoryAction.COMMENT_ADDED.value})


def preview(text: str, limit: int = DETAILS_PREVIEW_LENGTH) -> str:
    """Shorten free text for a ledger details line."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class HistoryLedger:
    """Append-only record of transitions and authored entries.

    append() is the only write. Rows are never updated or deleted; the
    model rejects both at flush time.
    """

    def __init__(self, db: Session):
        """Initialize history ledger."""
        self.db = db

    def append(
        self,
        acceptance_id: str,
        user_id: Optional[str],
        action,
        from_status,
        to_status,
        details: str,
    ) -> RiskAcceptanceHistory:
        """Append one row inside the caller's transaction."""
        entry = RiskAcceptanceHistory(
            acceptance_id=acceptance_id,
            user_id=user_id,
            action=getattr(action, "value", action),
            from_status=getattr(from_status, "value", from_status),
            to_status=getattr(to_status, "value", to_status),
            details=details,
            created_at=utcnow(),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def entries(self, acceptance_id: str) -> list[RiskAcceptanceHistory]:
        """All rows for an acceptance in commit order.

        Ordered by id alone: inserts for one acceptance are serialised by the
        status row lock, while created_at comes from each host's clock.
        """
        return (
            self.db.query(RiskAcceptanceHistory)
            .filter(RiskAcceptanceHistory.acceptance_id == acceptance_id)
            .order_by(RiskAcceptanceHistory.id.asc())
            .all()
        )

    def transitions(self, acceptance_id: str) -> list[RiskAcceptanceHistory]:
        """Rows that record a status change (or the initial CREATED row)."""
        return [entry for entry in self.entries(acceptance_id) if entry.action not in ANNOTATION_ACTIONS]

    def status_path(self, acceptance_id: str) -> list[str]:
        """Sequence of statuses the acceptance has passed through."""
        return [entry.to_status for entry in self.transitions(acceptance_id)]

    def replay_status(self, acceptance_id: str) -> Optional[str]:
        """Status reconstructed from the ledger alone."""
        path = self.status_path(acceptance_id)
        return path[-1] if path else None

    def verify_chain(self, acceptance_id: str) -> bool:
        """Check that every row starts where the previous one ended."""
        previous: Optional[str] = None
        for index, entry in enumerate(self.transitions(acceptance_id)):
            if index == 0:
                if entry.from_status is not None:
                    return False
            elif entry.from_status != previous:
                return False
            previous = entry.to_status
        return True
