"""Risk acceptance state machine definition.

Each edge names the action written to the history ledger, the actor that
may trigger it and whether a review note must accompany it. Anything not
listed here is an illegal transition.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from riskaccept_api.models.acceptance import AcceptanceStatus, HistoryAction


class RequiredActor(str, enum.Enum):
    """Who may trigger an edge."""

    REVIEWER = "REVIEWER"  # any user holding the review permission (CCRO)
    APPROVER = "APPROVER"  # exactly acceptance.approver_id
    PROPOSER = "PROPOSER"  # exactly acceptance.proposer_id
    SYSTEM = "SYSTEM"  # expiry sweeper only


@dataclass(frozen=True)
class Edge:
    """One legal transition."""

    from_status: AcceptanceStatus
    to_status: AcceptanceStatus
    action: HistoryAction
    actor: RequiredActor
    requires_note: bool = False


S = AcceptanceStatus

EDGES = (
    Edge(S.PROPOSED, S.CCRO_REVIEW, HistoryAction.SUBMITTED_FOR_REVIEW, RequiredActor.REVIEWER),
    Edge(S.CCRO_REVIEW, S.AWAITING_APPROVAL, HistoryAction.FORWARDED_FOR_APPROVAL, RequiredActor.REVIEWER),
    Edge(S.CCRO_REVIEW, S.RETURNED, HistoryAction.RETURNED, RequiredActor.REVIEWER, requires_note=True),
    Edge(S.CCRO_REVIEW, S.REJECTED, HistoryAction.REJECTED, RequiredActor.REVIEWER, requires_note=True),
    Edge(S.AWAITING_APPROVAL, S.APPROVED, HistoryAction.APPROVED, RequiredActor.APPROVER),
    Edge(S.AWAITING_APPROVAL, S.RETURNED, HistoryAction.RETURNED, RequiredActor.APPROVER, requires_note=True),
    Edge(S.AWAITING_APPROVAL, S.REJECTED, HistoryAction.REJECTED, RequiredActor.APPROVER, requires_note=True),
    Edge(S.RETURNED, S.PROPOSED, HistoryAction.RESUBMITTED, RequiredActor.PROPOSER),
    Edge(S.APPROVED, S.EXPIRED, HistoryAction.EXPIRED, RequiredActor.SYSTEM),
)

TRANSITIONS = {(edge.from_status, edge.to_status): edge for edge in EDGES}

INITIAL_STATUS = S.PROPOSED
EDITABLE_STATUSES = frozenset({S.PROPOSED, S.RETURNED})
TERMINAL_STATUSES = frozenset({S.REJECTED, S.EXPIRED})


def coerce_status(value) -> AcceptanceStatus:
    """Parse a status name, raising ValueError for unknown values."""
    if isinstance(value, AcceptanceStatus):
        return value
    return AcceptanceStatus(value)


def get_edge(from_status, to_status) -> Optional[Edge]:
    """Return the edge between two states, or None if illegal."""
    return TRANSITIONS.get((coerce_status(from_status), coerce_status(to_status)))


def edges_from(from_status) -> list[Edge]:
    """All edges leaving a state, in table order."""
    status = coerce_status(from_status)
    return [edge for edge in EDGES if edge.from_status == status]
