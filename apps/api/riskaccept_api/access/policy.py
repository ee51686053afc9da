"""Access and visibility policy for risk acceptances."""

import logging
from typing import Optional

from riskaccept_api.access.permissions import (
    CREATE_ACCEPTANCE,
    REVIEW_ACCEPTANCE,
    SYSTEM_ROLE,
    VIEW_ACCEPTANCES,
    DefaultPermissionResolver,
    PermissionResolver,
)
from riskaccept_api.workflow.states import (
    EDITABLE_STATUSES,
    RequiredActor,
    coerce_status,
    edges_from,
    get_edge,
)

logger = logging.getLogger(__name__)


class AccessPolicy:
    """Decides who may view, comment on, edit or transition an acceptance.

    Every check is a pure function of the actor, the acceptance and the
    permission resolver. Role semantics live in the resolver so they can be
    swapped without touching the state machine.
    """

    def __init__(self, resolver: Optional[PermissionResolver] = None):
        """Initialize access policy."""
        self.resolver = resolver or DefaultPermissionResolver()

    def is_reviewer(self, actor_role: Optional[str], actor_id: Optional[str]) -> bool:
        """Check if the actor acts for the CCRO review function."""
        if actor_role == SYSTEM_ROLE:
            return False
        return self.resolver.has_permission(actor_role, actor_id, REVIEW_ACCEPTANCE)

    def can_view(self, actor_role: Optional[str], actor_id: Optional[str], acceptance=None) -> bool:
        """Any user with general read access may view any acceptance."""
        if actor_role == SYSTEM_ROLE:
            return True
        return self.resolver.has_permission(actor_role, actor_id, VIEW_ACCEPTANCES)

    def can_create(self, actor_role: Optional[str], actor_id: Optional[str]) -> bool:
        """Check if the actor may propose a new acceptance."""
        if actor_role == SYSTEM_ROLE:
            return False
        return self.resolver.has_permission(actor_role, actor_id, CREATE_ACCEPTANCE)

    def can_comment(self, actor_role: Optional[str], actor_id: Optional[str], acceptance) -> bool:
        """Proposer, current approver and CCRO users may write comments."""
        if not actor_id:
            return False
        if actor_id == acceptance.proposer_id:
            return True
        if acceptance.approver_id and actor_id == acceptance.approver_id:
            return True
        return self.is_reviewer(actor_role, actor_id)

    def can_edit(self, actor_role: Optional[str], actor_id: Optional[str], acceptance) -> bool:
        """Only the proposer edits content, and only before review starts."""
        if not actor_id or actor_id != acceptance.proposer_id:
            return False
        return coerce_status(acceptance.status) in EDITABLE_STATUSES

    def can_transition(
        self,
        actor_role: Optional[str],
        actor_id: Optional[str],
        acceptance,
        from_status,
        to_status,
    ) -> bool:
        """Check the actor against the required actor for the edge."""
        edge = get_edge(from_status, to_status)
        if edge is None:
            return False

        if edge.actor == RequiredActor.SYSTEM:
            return actor_role == SYSTEM_ROLE
        if actor_role == SYSTEM_ROLE or not actor_id:
            return False
        if edge.actor == RequiredActor.REVIEWER:
            return self.is_reviewer(actor_role, actor_id)
        if edge.actor == RequiredActor.APPROVER:
            return bool(acceptance.approver_id) and actor_id == acceptance.approver_id
        if edge.actor == RequiredActor.PROPOSER:
            return actor_id == acceptance.proposer_id

        logger.warning("Unhandled actor requirement", extra={"actor": edge.actor})
        return False

    def allowed_targets(self, actor_role: Optional[str], actor_id: Optional[str], acceptance) -> list[str]:
        """Legal next states for the current status and this actor."""
        return [
            edge.to_status.value
            for edge in edges_from(acceptance.status)
            if self.can_transition(actor_role, actor_id, acceptance, edge.from_status, edge.to_status)
        ]
