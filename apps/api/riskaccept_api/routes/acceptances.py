"""Risk acceptance endpoints."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from riskaccept_api.access.permissions import DatabasePermissionResolver
from riskaccept_api.access.policy import AccessPolicy
from riskaccept_api.auth.users import get_current_user
from riskaccept_api.db.session import get_db
from riskaccept_api.models import AcceptanceSource, AcceptanceStatus, User
from riskaccept_api.queries.projection import AcceptanceQueryService
from riskaccept_api.workflow.engine import AcceptanceWorkflow
from riskaccept_api.workflow.errors import Forbidden

router = APIRouter(prefix="/v1/risk-acceptances", tags=["risk-acceptances"])


# ----------------------------------------------------------------------
# Request models
# ----------------------------------------------------------------------


class CreateAcceptanceRequest(BaseModel):
    """Proposal of a new risk acceptance."""

    title: str = Field(..., description="Short title")
    description: str = Field(..., description="What risk is being accepted")
    source: AcceptanceSource = Field(..., description="RISK_REGISTER, CONTROL_TESTING, INCIDENT or AD_HOC")
    proposed_rationale: str = Field(..., description="Why the risk should be accepted")
    proposed_conditions: Optional[str] = Field(None, description="Constraints attached to the acceptance")
    risk_id: Optional[str] = None
    linked_control_id: Optional[str] = None
    consumer_duty_outcome_id: Optional[str] = None
    review_date: Optional[datetime] = Field(None, description="Date the acceptance lapses unless re-affirmed")
    approver_id: Optional[str] = Field(None, description="User who makes the final decision")
    linked_action_ids: list[str] = Field(default_factory=list)


class UpdateAcceptanceRequest(BaseModel):
    """Proposer edits; only fields present in the body are changed."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    proposed_rationale: Optional[str] = None
    proposed_conditions: Optional[str] = None
    risk_id: Optional[str] = None
    linked_control_id: Optional[str] = None
    consumer_duty_outcome_id: Optional[str] = None
    review_date: Optional[datetime] = None
    approver_id: Optional[str] = None
    linked_action_ids: Optional[list[str]] = None
    expected_status: Optional[AcceptanceStatus] = None


class TransitionRequest(BaseModel):
    """Request to move an acceptance along one edge."""

    target_status: AcceptanceStatus
    review_note: Optional[str] = None
    approver_id: Optional[str] = None
    review_date: Optional[datetime] = None
    expected_status: Optional[AcceptanceStatus] = Field(
        None, description="Status the caller last observed; mismatch returns 409"
    )


class CommentRequest(BaseModel):
    """New comment."""

    body: str


# ----------------------------------------------------------------------
# Response models
# ----------------------------------------------------------------------


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: str


class ControlSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reference: str
    name: str


class MitigationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    status: str


class RiskSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reference: str
    name: str
    owner_id: Optional[str] = None
    residual_likelihood: Optional[int] = None
    residual_impact: Optional[int] = None
    risk_appetite: Optional[str] = None
    controls: list[ControlSummary] = Field(default_factory=list)
    mitigations: list[MitigationSummary] = Field(default_factory=list)


class OutcomeSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class CommentResponse(BaseModel):
    """Comment thread entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    acceptance_id: str
    user_id: str
    user: Optional[UserSummary] = None
    body: str
    created_at: datetime


class HistoryResponse(BaseModel):
    """Ledger row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    acceptance_id: str
    user_id: Optional[str] = None
    user: Optional[UserSummary] = None
    action: str
    from_status: Optional[str] = None
    to_status: str
    details: str
    created_at: datetime


class AcceptanceResponse(BaseModel):
    """Risk acceptance with linked records, comments and history."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    reference: str
    source: str
    status: str
    title: str
    description: str
    proposed_rationale: str
    proposed_conditions: Optional[str] = None
    risk_id: Optional[str] = None
    linked_control_id: Optional[str] = None
    consumer_duty_outcome_id: Optional[str] = None
    linked_action_ids: list[str] = Field(default_factory=list)
    proposer_id: str
    approver_id: Optional[str] = None
    reviewer_id: Optional[str] = None
    review_date: Optional[datetime] = None
    review_note: Optional[str] = None
    returned_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    risk: Optional[RiskSummary] = None
    linked_control: Optional[ControlSummary] = None
    consumer_duty_outcome: Optional[OutcomeSummary] = None
    proposer: Optional[UserSummary] = None
    approver: Optional[UserSummary] = None
    comments: list[CommentResponse] = Field(default_factory=list)
    history: list[HistoryResponse] = Field(default_factory=list)

    # Next states the calling user may move this acceptance to
    allowed_transitions: list[str] = Field(default_factory=list)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def _policy(db: Session) -> AccessPolicy:
    return AccessPolicy(DatabasePermissionResolver(db))


def _require_view(policy: AccessPolicy, user: User) -> None:
    if not policy.can_view(user.role, user.id):
        raise Forbidden("You do not have access to risk acceptances")


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid.uuid4())


def _project(acceptance, policy: AccessPolicy, user: User) -> AcceptanceResponse:
    response = AcceptanceResponse.model_validate(acceptance)
    response.allowed_transitions = policy.allowed_targets(user.role, user.id, acceptance)
    return response


# ----------------------------------------------------------------------
# Endpoints
# ----------------------------------------------------------------------


@router.post("", response_model=AcceptanceResponse, status_code=status.HTTP_201_CREATED)
async def create_acceptance(
    request_data: CreateAcceptanceRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Propose a new risk acceptance."""
    policy = _policy(db)
    workflow = AcceptanceWorkflow(db, policy=policy)
    acceptance = workflow.create_acceptance(
        proposer_id=user.id,
        proposer_role=user.role,
        title=request_data.title,
        description=request_data.description,
        source=request_data.source,
        proposed_rationale=request_data.proposed_rationale,
        proposed_conditions=request_data.proposed_conditions,
        risk_id=request_data.risk_id,
        linked_control_id=request_data.linked_control_id,
        consumer_duty_outcome_id=request_data.consumer_duty_outcome_id,
        review_date=request_data.review_date,
        approver_id=request_data.approver_id,
        linked_action_ids=request_data.linked_action_ids,
    )
    return _project(AcceptanceQueryService(db).get_acceptance(acceptance.id), policy, user)


@router.get("", response_model=list[AcceptanceResponse])
async def list_acceptances(
    status_filter: Optional[str] = Query(None, alias="status"),
    source: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List risk acceptances, optionally filtered by status and source."""
    policy = _policy(db)
    _require_view(policy, user)
    acceptances = AcceptanceQueryService(db).list_acceptances(status=status_filter, source=source)
    return [_project(acceptance, policy, user) for acceptance in acceptances]


@router.get("/{acceptance_id}", response_model=AcceptanceResponse)
async def get_acceptance(
    acceptance_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Get one risk acceptance."""
    policy = _policy(db)
    _require_view(policy, user)
    return _project(AcceptanceQueryService(db).get_acceptance(acceptance_id), policy, user)


@router.patch("/{acceptance_id}", response_model=AcceptanceResponse)
async def update_acceptance(
    acceptance_id: str,
    request_data: UpdateAcceptanceRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Edit a proposal while it is PROPOSED or RETURNED."""
    policy = _policy(db)
    changes = request_data.model_dump(exclude_unset=True)
    expected_status = changes.pop("expected_status", None)
    AcceptanceWorkflow(db, policy=policy).update_acceptance(
        acceptance_id,
        actor_id=user.id,
        actor_role=user.role,
        changes=changes,
        expected_status=expected_status,
    )
    return _project(AcceptanceQueryService(db).get_acceptance(acceptance_id), policy, user)


@router.post("/{acceptance_id}/transitions", response_model=AcceptanceResponse)
async def transition_acceptance(
    acceptance_id: str,
    request_data: TransitionRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Move a risk acceptance to its next status."""
    policy = _policy(db)
    AcceptanceWorkflow(db, policy=policy).transition(
        acceptance_id,
        actor_id=user.id,
        actor_role=user.role,
        target_status=request_data.target_status,
        review_note=request_data.review_note,
        approver_id=request_data.approver_id,
        review_date=request_data.review_date,
        expected_status=request_data.expected_status,
        correlation_id=_correlation_id(request),
    )
    return _project(AcceptanceQueryService(db).get_acceptance(acceptance_id), policy, user)


@router.post(
    "/{acceptance_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    acceptance_id: str,
    request_data: CommentRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Add a comment to the discussion thread."""
    comment = AcceptanceWorkflow(db, policy=_policy(db)).add_comment(
        acceptance_id,
        user_id=user.id,
        body=request_data.body,
        actor_role=user.role,
    )
    return CommentResponse.model_validate(comment)


@router.get("/{acceptance_id}/history", response_model=list[HistoryResponse])
async def get_history(
    acceptance_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Audit trail for a risk acceptance, oldest first."""
    _require_view(_policy(db), user)
    entries = AcceptanceQueryService(db).get_history(acceptance_id)
    return [HistoryResponse.model_validate(entry) for entry in entries]
