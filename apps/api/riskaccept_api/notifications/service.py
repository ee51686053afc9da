"""Outbound notifications for workflow events.

Messages are handed to a background worker after the transition commits.
A failure to enqueue is logged and never affects the transition.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.orm import Session

from riskaccept_api.models import RiskAcceptance, User
from riskaccept_api.settings import get_settings
from riskaccept_api.utils.metrics import notifications_enqueued

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Delivers a message to a user."""

    @abstractmethod
    def notify(self, user_id: str, subject: str, body: str, correlation_id: Optional[str] = None) -> None:
        """Send or enqueue a message."""


class LoggingNotifier(Notifier):
    """Writes messages to the log. Used in development and tests."""

    def notify(self, user_id, subject, body, correlation_id=None):
        logger.info(
            "Notification",
            extra={"user_id": user_id, "subject": subject, "correlation_id": correlation_id},
        )


class CeleryNotifier(Notifier):
    """Enqueues delivery on the worker (does not perform HTTP calls)."""

    def notify(self, user_id, subject, body, correlation_id=None):
        from riskaccept_api.celery_client import SEND_NOTIFICATION_TASK, get_celery_app

        get_celery_app().send_task(
            SEND_NOTIFICATION_TASK,
            args=[user_id, subject, body, correlation_id],
            retry=False,
        )


def get_notifier() -> Notifier:
    """Notifier selected by NOTIFICATION_BACKEND."""
    backend = get_settings().notification_backend
    if backend == "celery":
        return CeleryNotifier()
    return LoggingNotifier()


class NotificationService:
    """Builds workflow messages and hands them to a notifier."""

    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        """Initialize notification service."""
        self.db = db
        self.notifier = notifier or get_notifier()
        self.base_url = get_settings().app_base_url.rstrip("/")

    def _link(self, acceptance: RiskAcceptance) -> str:
        return f"{self.base_url}/risk-acceptances?highlight={acceptance.id}"

    def _display_name(self, user_id: Optional[str]) -> str:
        if not user_id:
            return "System"
        user = self.db.get(User, user_id)
        return user.name if user else user_id

    def _send(self, kind: str, user_id: Optional[str], subject: str, body: str, correlation_id=None) -> bool:
        if not user_id:
            logger.warning("Notification has no recipient", extra={"kind": kind})
            return False
        try:
            self.notifier.notify(user_id, subject, body, correlation_id)
        except Exception as e:
            notifications_enqueued.labels(kind=kind, status="failed").inc()
            logger.warning(
                f"Failed to enqueue notification: {e}",
                exc_info=True,
                extra={"kind": kind, "user_id": user_id, "correlation_id": correlation_id},
            )
            return False
        notifications_enqueued.labels(kind=kind, status="enqueued").inc()
        return True

    def approval_requested(self, acceptance: RiskAcceptance, correlation_id=None) -> bool:
        """Tell the approver an acceptance awaits their decision."""
        proposer = self._display_name(acceptance.proposer_id)
        return self._send(
            "approval_requested",
            acceptance.approver_id,
            f"Action Required: Risk Acceptance {acceptance.reference} awaiting your approval",
            f"{proposer} has submitted a risk acceptance for your approval.\n\n"
            f"{acceptance.reference}: {acceptance.title}\n\nReview & decide: {self._link(acceptance)}",
            correlation_id,
        )

    def decision_made(self, acceptance: RiskAcceptance, decided_by: Optional[str], correlation_id=None) -> bool:
        """Tell the proposer the outcome of a decision (approved, rejected, returned)."""
        decider = self._display_name(decided_by)
        outcome = acceptance.status.lower()
        body = f"{decider} has {outcome} {acceptance.reference}: {acceptance.title}."
        if acceptance.review_note:
            body += f"\n\nNote: {acceptance.review_note}"
        body += f"\n\nView: {self._link(acceptance)}"
        return self._send(
            "decision",
            acceptance.proposer_id,
            f"Risk Acceptance {acceptance.reference} has been {outcome}",
            body,
            correlation_id,
        )

    def expired(self, acceptance: RiskAcceptance, correlation_id=None) -> bool:
        """Tell the risk owner (or the proposer) an acceptance has lapsed."""
        recipient = acceptance.proposer_id
        if acceptance.risk is not None and acceptance.risk.owner_id:
            recipient = acceptance.risk.owner_id
        review_date = acceptance.review_date.date().isoformat() if acceptance.review_date else "n/a"
        return self._send(
            "expired",
            recipient,
            f"Risk Acceptance {acceptance.reference} has expired",
            f"The review date {review_date} for {acceptance.reference}: {acceptance.title} has passed. "
            f"The acceptance has expired and must be re-proposed if the risk is still tolerated.\n\n"
            f"View: {self._link(acceptance)}",
            correlation_id,
        )
