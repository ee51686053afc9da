"""Risk acceptance, comment and history models."""

import enum
import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import relationship

from riskaccept_api.db.base import Base
from riskaccept_api.utils.clock import utcnow


class AcceptanceStatus(str, enum.Enum):
    """Closed set of workflow states."""

    PROPOSED = "PROPOSED"
    CCRO_REVIEW = "CCRO_REVIEW"
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RETURNED = "RETURNED"
    EXPIRED = "EXPIRED"


class AcceptanceSource(str, enum.Enum):
    """Where the acceptance originated."""

    RISK_REGISTER = "RISK_REGISTER"
    CONTROL_TESTING = "CONTROL_TESTING"
    INCIDENT = "INCIDENT"
    AD_HOC = "AD_HOC"


class HistoryAction(str, enum.Enum):
    """Ledger action names."""

    CREATED = "CREATED"
    SUBMITTED_FOR_REVIEW = "SUBMITTED_FOR_REVIEW"
    FORWARDED_FOR_APPROVAL = "FORWARDED_FOR_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RETURNED = "RETURNED"
    RESUBMITTED = "RESUBMITTED"
    EXPIRED = "EXPIRED"
    # Non-transition entries: status is unchanged
    UPDATED = "UPDATED"
    COMMENT_ADDED = "COMMENT_ADDED"


class AppendOnlyViolation(Exception):
    """Raised when code tries to modify or delete a ledger row."""


def _new_id() -> str:
    return str(uuid.uuid4())


class RiskAcceptance(Base):
    """Formal acceptance of a risk outside tolerance."""

    __tablename__ = "risk_acceptances"

    id = Column(String(36), primary_key=True, default=_new_id)
    reference = Column(String(32), nullable=False, unique=True, index=True)
    source = Column(String(32), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=AcceptanceStatus.PROPOSED.value, index=True)

    # Content (editable only while PROPOSED/RETURNED)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)
    proposed_rationale = Column(Text, nullable=False)
    proposed_conditions = Column(Text, nullable=True)

    # Weak links - no FK constraints, targets live in other registers
    risk_id = Column(String(64), nullable=True, index=True)
    linked_control_id = Column(String(64), nullable=True)
    consumer_duty_outcome_id = Column(String(64), nullable=True)
    linked_action_ids = Column(JSON, nullable=False, default=list)

    # Workflow
    proposer_id = Column(String(64), nullable=False, index=True)
    approver_id = Column(String(64), nullable=True, index=True)
    reviewer_id = Column(String(64), nullable=True)  # CCRO reviewer who claimed the item
    review_date = Column(DateTime, nullable=True, index=True)
    review_note = Column(Text, nullable=True)
    returned_content_hash = Column(String(64), nullable=True)  # fingerprint taken on RETURNED

    returned_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    comments = relationship(
        "RiskAcceptanceComment",
        back_populates="acceptance",
        order_by=lambda: [RiskAcceptanceComment.created_at, RiskAcceptanceComment.id],
    )
    history = relationship(
        "RiskAcceptanceHistory",
        back_populates="acceptance",
        order_by=lambda: RiskAcceptanceHistory.id,
    )
    risk = relationship(
        "Risk",
        primaryjoin="foreign(RiskAcceptance.risk_id) == Risk.id",
        viewonly=True,
    )
    linked_control = relationship(
        "Control",
        primaryjoin="foreign(RiskAcceptance.linked_control_id) == Control.id",
        viewonly=True,
    )
    consumer_duty_outcome = relationship(
        "ConsumerDutyOutcome",
        primaryjoin="foreign(RiskAcceptance.consumer_duty_outcome_id) == ConsumerDutyOutcome.id",
        viewonly=True,
    )
    proposer = relationship(
        "User",
        primaryjoin="foreign(RiskAcceptance.proposer_id) == User.id",
        viewonly=True,
    )
    approver = relationship(
        "User",
        primaryjoin="foreign(RiskAcceptance.approver_id) == User.id",
        viewonly=True,
    )


class RiskAcceptanceComment(Base):
    """Discussion thread entry. Append-only."""

    __tablename__ = "risk_acceptance_comments"

    id = Column(Integer, primary_key=True, index=True)
    acceptance_id = Column(String(36), ForeignKey("risk_acceptances.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Relationships
    acceptance = relationship("RiskAcceptance", back_populates="comments")
    user = relationship(
        "User",
        primaryjoin="foreign(RiskAcceptanceComment.user_id) == User.id",
        viewonly=True,
    )


class RiskAcceptanceHistory(Base):
    """Append-only ledger of transitions and authored entries."""

    __tablename__ = "risk_acceptance_history"

    id = Column(Integer, primary_key=True, index=True)
    acceptance_id = Column(String(36), ForeignKey("risk_acceptances.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=True)  # NULL for system actions
    action = Column(String(32), nullable=False, index=True)
    from_status = Column(String(32), nullable=True)  # NULL only for CREATED
    to_status = Column(String(32), nullable=False)
    details = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Relationships
    acceptance = relationship("RiskAcceptance", back_populates="history")
    user = relationship(
        "User",
        primaryjoin="foreign(RiskAcceptanceHistory.user_id) == User.id",
        viewonly=True,
    )


@event.listens_for(RiskAcceptanceHistory, "before_update", propagate=True)
@event.listens_for(RiskAcceptanceComment, "before_update", propagate=True)
def _prevent_ledger_update(mapper, connection, target) -> None:
    """Reject any update to a persisted ledger row."""
    state = inspect(target)
    if not state.persistent:
        return
    for attr in mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            raise AppendOnlyViolation(
                f"{type(target).__name__} is append-only: field '{attr.key}' cannot be updated."
            )


@event.listens_for(RiskAcceptanceHistory, "before_delete", propagate=True)
@event.listens_for(RiskAcceptanceComment, "before_delete", propagate=True)
def _prevent_ledger_delete(mapper, connection, target) -> None:
    """Reject deletes to preserve the audit trail."""
    raise AppendOnlyViolation(f"{type(target).__name__} rows can never be deleted.")
