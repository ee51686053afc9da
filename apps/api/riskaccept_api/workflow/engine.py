"""Risk acceptance workflow engine.

All writes follow the same shape: read the row, check the actor and the
field guards, then apply a compare-and-swap UPDATE keyed on the status that
was read, append the ledger row and commit. If the swap matches no row a
concurrent caller won and the whole unit of work is rolled back.
"""

import hashlib
import json
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from riskaccept_api.access.permissions import DatabasePermissionResolver, SYSTEM_ROLE
from riskaccept_api.access.policy import AccessPolicy
from riskaccept_api.models import (
    AcceptanceSource,
    AcceptanceStatus,
    HistoryAction,
    RiskAcceptance,
    RiskAcceptanceComment,
    User,
)
from riskaccept_api.notifications.service import NotificationService
from riskaccept_api.settings import get_settings
from riskaccept_api.utils.clock import to_naive_utc, utcnow
from riskaccept_api.utils.metrics import (
    acceptances_created,
    notifications_enqueued,
    transitions_applied,
    transitions_rejected,
)
from riskaccept_api.workflow.errors import AcceptanceError, Conflict, Forbidden, NotFound, ValidationFailed
from riskaccept_api.workflow.history import HistoryLedger, preview
from riskaccept_api.workflow.references import ReferenceAllocator
from riskaccept_api.workflow.states import EDITABLE_STATUSES, INITIAL_STATUS, coerce_status, get_edge

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ("title", "description", "proposed_rationale", "proposed_conditions")
REQUIRED_CONTENT_FIELDS = ("title", "description", "proposed_rationale")
EDITABLE_FIELDS = CONTENT_FIELDS + (
    "risk_id",
    "linked_control_id",
    "consumer_duty_outcome_id",
    "linked_action_ids",
    "review_date",
    "approver_id",
)

# Edges that may (re)assign the approver or set a review date
APPROVER_ASSIGNING_ACTIONS = {HistoryAction.FORWARDED_FOR_APPROVAL, HistoryAction.RESUBMITTED}
REVIEW_DATE_ACTIONS = {HistoryAction.FORWARDED_FOR_APPROVAL, HistoryAction.APPROVED}

# Re-reads allowed when a transition lands between a comment's read and write
COMMENT_PIN_ATTEMPTS = 3

# Metric label per notifying action, matching NotificationService kinds
NOTIFICATION_KINDS = {
    HistoryAction.FORWARDED_FOR_APPROVAL: "approval_requested",
    HistoryAction.APPROVED: "decision",
    HistoryAction.REJECTED: "decision",
    HistoryAction.RETURNED: "decision",
    HistoryAction.EXPIRED: "expired",
}


def content_fingerprint(acceptance) -> str:
    """SHA-256 over the proposer-authored content fields."""
    content = {field: getattr(acceptance, field) or "" for field in CONTENT_FIELDS}
    return hashlib.sha256(json.dumps(content, sort_keys=True).encode()).hexdigest()


def normalise_action_ids(action_ids) -> list[str]:
    """Linked actions form a set; store them deduplicated and sorted."""
    if not action_ids:
        return []
    return sorted({str(action_id) for action_id in action_ids})


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class AcceptanceWorkflow:
    """Creates acceptances and drives them through the state machine."""

    def __init__(
        self,
        db: Session,
        policy: Optional[AccessPolicy] = None,
        notifications: Optional[NotificationService] = None,
        allocator: Optional[ReferenceAllocator] = None,
    ):
        """Initialize workflow engine."""
        self.db = db
        self.policy = policy or AccessPolicy(DatabasePermissionResolver(db))
        self.notifications = notifications or NotificationService(db)
        self.allocator = allocator or ReferenceAllocator(db)
        self.ledger = HistoryLedger(db)
        self.reference_prefix = get_settings().reference_prefix

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _load(self, acceptance_id: str) -> RiskAcceptance:
        """Read the latest committed row, bypassing the identity map."""
        acceptance = (
            self.db.query(RiskAcceptance)
            .populate_existing()
            .filter(RiskAcceptance.id == acceptance_id)
            .first()
        )
        if not acceptance:
            raise NotFound(f"Risk acceptance {acceptance_id} not found")
        return acceptance

    def _resolve_actor(self, user_id: Optional[str], role: Optional[str]) -> Optional[str]:
        """Return the actor's directory role.

        A claimed role must match the directory. SYSTEM is only valid with no
        user id and is never held by a directory user.
        """
        if role == SYSTEM_ROLE:
            if user_id:
                raise Forbidden(f"User {user_id} cannot act as {SYSTEM_ROLE}")
            return SYSTEM_ROLE
        if not user_id:
            return None
        user = self.db.get(User, user_id)
        if not user or not user.is_active or user.role == SYSTEM_ROLE:
            raise Forbidden(f"Unknown or inactive user {user_id}")
        if role and role != user.role:
            raise Forbidden(f"User {user_id} does not hold role {role}")
        return user.role

    def _require_active_user(self, user_id: str, purpose: str) -> None:
        user = self.db.get(User, user_id)
        if not user or not user.is_active:
            raise ValidationFailed(f"{purpose} {user_id} is not an active user")

    def _fail(self, error: AcceptanceError, **log_extra) -> AcceptanceError:
        """Roll back the unit of work and record the rejection."""
        self.db.rollback()
        transitions_rejected.labels(error=error.error).inc()
        level = logging.INFO if isinstance(error, Conflict) else logging.WARNING
        logger.log(level, f"Workflow call rejected: {error.message}", extra={"error": error.error, **log_extra})
        return error

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_acceptance(
        self,
        proposer_id: str,
        title: str,
        description: str,
        source,
        proposed_rationale: str,
        proposed_conditions: Optional[str] = None,
        risk_id: Optional[str] = None,
        linked_control_id: Optional[str] = None,
        consumer_duty_outcome_id: Optional[str] = None,
        review_date: Optional[datetime] = None,
        approver_id: Optional[str] = None,
        linked_action_ids: Optional[list[str]] = None,
        proposer_role: Optional[str] = None,
    ) -> RiskAcceptance:
        """Propose a new acceptance. Always starts in PROPOSED with one CREATED row."""
        log_extra = {"proposer_id": proposer_id}
        try:
            role = self._resolve_actor(proposer_id, proposer_role)
            if not self.policy.can_create(role, proposer_id):
                raise Forbidden("Actor may not propose risk acceptances")

            for field, value in (
                ("title", title),
                ("description", description),
                ("proposed_rationale", proposed_rationale),
            ):
                if _is_blank(value):
                    raise ValidationFailed(f"{field} is required")
            try:
                source_value = AcceptanceSource(source).value
            except ValueError:
                raise ValidationFailed(f"Unknown source {source!r}")
            if approver_id:
                self._require_active_user(approver_id, "Approver")

            reference = self.allocator.allocate(self.reference_prefix)
            now = utcnow()
            acceptance = RiskAcceptance(
                reference=reference,
                source=source_value,
                status=INITIAL_STATUS.value,
                title=title.strip(),
                description=description,
                proposed_rationale=proposed_rationale,
                proposed_conditions=proposed_conditions,
                risk_id=risk_id,
                linked_control_id=linked_control_id,
                consumer_duty_outcome_id=consumer_duty_outcome_id,
                linked_action_ids=normalise_action_ids(linked_action_ids),
                proposer_id=proposer_id,
                approver_id=approver_id,
                review_date=to_naive_utc(review_date) if review_date else None,
                created_at=now,
                updated_at=now,
            )
            self.db.add(acceptance)
            self.db.flush()

            self.ledger.append(
                acceptance.id,
                proposer_id,
                HistoryAction.CREATED,
                None,
                INITIAL_STATUS,
                f"Risk acceptance {reference} proposed: {acceptance.title}",
            )
            self.db.commit()
        except AcceptanceError as e:
            raise self._fail(e, **log_extra)
        except Exception:
            self.db.rollback()
            raise

        acceptances_created.labels(source=source_value).inc()
        logger.info(
            "Risk acceptance proposed",
            extra={"acceptance_id": acceptance.id, "reference": reference, "source": source_value, **log_extra},
        )
        return self._load(acceptance.id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _swap(self, acceptance_id: str, expected_status: str, values: dict) -> bool:
        """Compare-and-swap on status. Returns False if another writer got there first."""
        result = self.db.execute(
            update(RiskAcceptance)
            .where(
                RiskAcceptance.id == acceptance_id,
                RiskAcceptance.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def transition(
        self,
        acceptance_id: str,
        actor_id: Optional[str],
        actor_role: Optional[str],
        target_status,
        review_note: Optional[str] = None,
        approver_id: Optional[str] = None,
        review_date: Optional[datetime] = None,
        expected_status=None,
        now: Optional[datetime] = None,
        correlation_id: Optional[str] = None,
    ) -> RiskAcceptance:
        """Move an acceptance along one edge of the state machine.

        Raises NotFound, Conflict, Forbidden or ValidationFailed; on any of
        them nothing is written.
        """
        now = to_naive_utc(now) if now else utcnow()
        log_extra = {
            "acceptance_id": acceptance_id,
            "actor_id": actor_id,
            "actor_role": actor_role,
            "target_status": getattr(target_status, "value", target_status),
            "correlation_id": correlation_id,
        }
        try:
            try:
                target = coerce_status(target_status)
            except ValueError:
                raise ValidationFailed(f"Unknown status {target_status!r}")

            acceptance = self._load(acceptance_id)
            current = coerce_status(acceptance.status)
            log_extra["from_status"] = current.value

            if expected_status is not None:
                try:
                    expected = coerce_status(expected_status)
                except ValueError:
                    raise ValidationFailed(f"Unknown status {expected_status!r}")
                if expected != current:
                    raise Conflict(
                        f"{acceptance.reference} is {current.value}, expected {expected.value}"
                    )

            edge = get_edge(current, target)
            if edge is None:
                if target == current:
                    raise Conflict(f"{acceptance.reference} is already {current.value}")
                raise ValidationFailed(f"Cannot move {acceptance.reference} from {current.value} to {target.value}")

            actor_role = self._resolve_actor(actor_id, actor_role)
            log_extra["actor_role"] = actor_role
            if not self.policy.can_transition(actor_role, actor_id, acceptance, current, target):
                raise Forbidden(f"Actor may not perform {edge.action.value} on {acceptance.reference}")

            values, details = self._apply_guards(
                acceptance, edge, actor_id, review_note, approver_id, review_date, now
            )
            values["status"] = target.value
            values["updated_at"] = now

            if not self._swap(acceptance.id, current.value, values):
                raise Conflict(f"{acceptance.reference} changed status concurrently")

            self.ledger.append(
                acceptance.id,
                None if actor_role == SYSTEM_ROLE else actor_id,
                edge.action,
                current,
                target,
                details,
            )
            self.db.commit()
        except AcceptanceError as e:
            raise self._fail(e, **log_extra)
        except Exception:
            self.db.rollback()
            raise

        transitions_applied.labels(action=edge.action.value).inc()
        logger.info(
            f"Risk acceptance {edge.action.value}",
            extra={"reference": acceptance.reference, "action": edge.action.value, **log_extra},
        )

        updated = self._load(acceptance_id)
        self._notify(updated, edge.action, actor_id, correlation_id)
        return updated

    def _apply_guards(self, acceptance, edge, actor_id, review_note, approver_id, review_date, now):
        """Check field-level guards and build the column updates for an edge."""
        action = edge.action
        note = review_note.strip() if review_note and review_note.strip() else None

        if edge.requires_note and note is None:
            raise ValidationFailed(f"reviewNote is required for {action.value}")
        if approver_id and action not in APPROVER_ASSIGNING_ACTIONS:
            raise ValidationFailed(f"approverId cannot be changed on {action.value}")
        if review_date and action not in REVIEW_DATE_ACTIONS:
            raise ValidationFailed(f"reviewDate cannot be set on {action.value}")

        values: dict = {}
        details = note or f"Status changed from {edge.from_status.value} to {edge.to_status.value}"

        if action == HistoryAction.SUBMITTED_FOR_REVIEW:
            values["reviewer_id"] = actor_id
            details = note or "Claimed for CCRO review"

        elif action == HistoryAction.FORWARDED_FOR_APPROVAL:
            approver = approver_id or acceptance.approver_id
            if not approver:
                raise ValidationFailed("approverId is required to forward for approval")
            self._require_active_user(approver, "Approver")
            values["approver_id"] = approver
            if note:
                values["review_note"] = note
            if review_date:
                values["review_date"] = to_naive_utc(review_date)
            details = f"Forwarded to approver {approver}" + (f": {note}" if note else "")

        elif action == HistoryAction.RETURNED:
            values["review_note"] = note
            values["returned_at"] = now
            values["returned_content_hash"] = content_fingerprint(acceptance)

        elif action == HistoryAction.REJECTED:
            values["review_note"] = note
            values["rejected_at"] = now

        elif action == HistoryAction.APPROVED:
            values["approved_at"] = now
            if note:
                values["review_note"] = note
            if review_date:
                values["review_date"] = to_naive_utc(review_date)

        elif action == HistoryAction.RESUBMITTED:
            if acceptance.returned_content_hash == content_fingerprint(acceptance):
                raise ValidationFailed(
                    "Title, description, rationale or conditions must change before resubmission"
                )
            if approver_id:
                self._require_active_user(approver_id, "Approver")
                values["approver_id"] = approver_id
            # Prior note stays readable in the ledger; the live field starts clean
            values["review_note"] = None
            values["returned_content_hash"] = None
            values["reviewer_id"] = None
            details = "Resubmitted after changes"
            if acceptance.review_note:
                details += f". Previous review note: {acceptance.review_note}"

        elif action == HistoryAction.EXPIRED:
            if acceptance.review_date is None or not acceptance.review_date < now:
                raise ValidationFailed(f"{acceptance.reference} review date has not passed")
            values["expired_at"] = now
            details = (
                f"Review date {acceptance.review_date.date().isoformat()} has passed. "
                "Acceptance expired automatically."
            )

        return values, details

    def _notify(self, acceptance: RiskAcceptance, action: HistoryAction, actor_id, correlation_id) -> None:
        """Fire-and-forget messages after commit.

        The transition is already durable here, so a failure while building
        or enqueueing a message is logged and counted, never raised.
        """
        try:
            if action == HistoryAction.FORWARDED_FOR_APPROVAL:
                self.notifications.approval_requested(acceptance, correlation_id)
            elif action in (HistoryAction.APPROVED, HistoryAction.REJECTED, HistoryAction.RETURNED):
                self.notifications.decision_made(acceptance, actor_id, correlation_id)
            elif action == HistoryAction.EXPIRED:
                self.notifications.expired(acceptance, correlation_id)
        except Exception as e:
            reference, acceptance_id = acceptance.reference, acceptance.id
            self.db.rollback()
            notifications_enqueued.labels(kind=NOTIFICATION_KINDS.get(action, "other"), status="failed").inc()
            logger.warning(
                f"Notification for {reference} failed: {e}",
                exc_info=True,
                extra={"acceptance_id": acceptance_id, "action": action.value, "correlation_id": correlation_id},
            )

    # ------------------------------------------------------------------
    # Content edits and comments
    # ------------------------------------------------------------------

    def update_acceptance(
        self,
        acceptance_id: str,
        actor_id: str,
        changes: dict,
        actor_role: Optional[str] = None,
        expected_status=None,
    ) -> RiskAcceptance:
        """Edit proposer-owned fields while PROPOSED or RETURNED."""
        log_extra = {"acceptance_id": acceptance_id, "actor_id": actor_id}
        try:
            unknown = set(changes) - set(EDITABLE_FIELDS)
            if unknown:
                raise ValidationFailed(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

            acceptance = self._load(acceptance_id)
            current = coerce_status(acceptance.status)
            if expected_status is not None:
                try:
                    expected = coerce_status(expected_status)
                except ValueError:
                    raise ValidationFailed(f"Unknown status {expected_status!r}")
                if expected != current:
                    raise Conflict(f"{acceptance.reference} is {current.value}, expected {expected.value}")
            if actor_id != acceptance.proposer_id:
                raise Forbidden("Only the proposer may edit a risk acceptance")
            actor_role = self._resolve_actor(actor_id, actor_role)
            if current not in EDITABLE_STATUSES:
                raise Conflict(f"{acceptance.reference} cannot be edited while {current.value}")
            if not self.policy.can_edit(actor_role, actor_id, acceptance):
                raise Forbidden("Actor may not edit this risk acceptance")

            values = {}
            for field, value in changes.items():
                if field in REQUIRED_CONTENT_FIELDS and _is_blank(value):
                    raise ValidationFailed(f"{field} cannot be empty")
                if field == "linked_action_ids":
                    value = normalise_action_ids(value)
                elif field == "review_date" and value is not None:
                    value = to_naive_utc(value)
                elif field == "approver_id" and value:
                    self._require_active_user(value, "Approver")
                if getattr(acceptance, field) != value:
                    values[field] = value

            if not values:
                self.db.rollback()
                return acceptance

            values["updated_at"] = utcnow()
            if not self._swap(acceptance.id, current.value, values):
                raise Conflict(f"{acceptance.reference} changed status concurrently")

            changed = sorted(field for field in values if field != "updated_at")
            self.ledger.append(
                acceptance.id,
                actor_id,
                HistoryAction.UPDATED,
                current,
                current,
                f"Updated fields: {', '.join(changed)}",
            )
            self.db.commit()
        except AcceptanceError as e:
            raise self._fail(e, **log_extra)
        except Exception:
            self.db.rollback()
            raise

        logger.info("Risk acceptance updated", extra={"fields": changed, **log_extra})
        return self._load(acceptance_id)

    def add_comment(
        self,
        acceptance_id: str,
        user_id: str,
        body: str,
        actor_role: Optional[str] = None,
    ) -> RiskAcceptanceComment:
        """Append a comment and its COMMENT_ADDED ledger row."""
        log_extra = {"acceptance_id": acceptance_id, "user_id": user_id}
        try:
            acceptance = self._load(acceptance_id)
            if _is_blank(body):
                raise ValidationFailed("Comment body is required")
            role = self._resolve_actor(user_id, actor_role)
            # Pin the status the ledger row will carry; a transition that
            # commits in between makes the pin miss and we re-read.
            for _ in range(COMMENT_PIN_ATTEMPTS):
                if not self.policy.can_comment(role, user_id, acceptance):
                    raise Forbidden("Only the proposer, the approver or CCRO reviewers may comment")
                pin = {"status": acceptance.status, "updated_at": RiskAcceptance.updated_at}
                if self._swap(acceptance.id, acceptance.status, pin):
                    break
                self.db.rollback()
                acceptance = self._load(acceptance_id)
            else:
                raise Conflict(f"{acceptance.reference} kept changing status; comment not recorded")

            comment = RiskAcceptanceComment(
                acceptance_id=acceptance.id,
                user_id=user_id,
                body=body,
                created_at=utcnow(),
            )
            self.db.add(comment)
            self.ledger.append(
                acceptance.id,
                user_id,
                HistoryAction.COMMENT_ADDED,
                acceptance.status,
                acceptance.status,
                preview(body),
            )
            self.db.commit()
        except AcceptanceError as e:
            raise self._fail(e, **log_extra)
        except Exception:
            self.db.rollback()
            raise

        logger.info("Comment added", extra={"comment_id": comment.id, **log_extra})
        self.db.refresh(comment)
        return comment
