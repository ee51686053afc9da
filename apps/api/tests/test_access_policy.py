"""Tests for the access/visibility policy and permission resolution."""

from unittest.mock import Mock

import pytest

from riskaccept_api.access.permissions import (
    CREATE_ACCEPTANCE,
    REVIEW_ACCEPTANCE,
    SYSTEM_ROLE,
    VIEW_ACCEPTANCES,
    DatabasePermissionResolver,
    DefaultPermissionResolver,
)
from riskaccept_api.access.policy import AccessPolicy
from riskaccept_api.models import AcceptanceStatus, RolePermission, UserPermission

S = AcceptanceStatus


def make_acceptance(status=S.PROPOSED, proposer_id="P1", approver_id="U9"):
    acceptance = Mock()
    acceptance.status = status.value
    acceptance.proposer_id = proposer_id
    acceptance.approver_id = approver_id
    return acceptance


class TestCanTransition:
    """Required actor per edge."""

    def setup_method(self):
        self.policy = AccessPolicy(DefaultPermissionResolver())

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (S.PROPOSED, S.CCRO_REVIEW),
            (S.CCRO_REVIEW, S.AWAITING_APPROVAL),
            (S.CCRO_REVIEW, S.RETURNED),
            (S.CCRO_REVIEW, S.REJECTED),
        ],
    )
    def test_reviewer_edges(self, from_status, to_status):
        acceptance = make_acceptance(from_status)
        assert self.policy.can_transition("CCRO_TEAM", "C1", acceptance, from_status, to_status)
        assert not self.policy.can_transition("CEO", "U9", acceptance, from_status, to_status)
        assert not self.policy.can_transition("OWNER", "P1", acceptance, from_status, to_status)

    @pytest.mark.parametrize("to_status", [S.APPROVED, S.RETURNED, S.REJECTED])
    def test_approver_edges(self, to_status):
        acceptance = make_acceptance(S.AWAITING_APPROVAL)
        assert self.policy.can_transition("CEO", "U9", acceptance, S.AWAITING_APPROVAL, to_status)
        assert not self.policy.can_transition("CEO", "U8", acceptance, S.AWAITING_APPROVAL, to_status)
        assert not self.policy.can_transition("CCRO_TEAM", "C1", acceptance, S.AWAITING_APPROVAL, to_status)

    def test_approver_edges_need_assigned_approver(self):
        acceptance = make_acceptance(S.AWAITING_APPROVAL, approver_id=None)
        assert not self.policy.can_transition("CEO", None, acceptance, S.AWAITING_APPROVAL, S.APPROVED)

    def test_resubmit_is_proposer_only(self):
        acceptance = make_acceptance(S.RETURNED)
        assert self.policy.can_transition("OWNER", "P1", acceptance, S.RETURNED, S.PROPOSED)
        assert not self.policy.can_transition("CCRO_TEAM", "C1", acceptance, S.RETURNED, S.PROPOSED)

    def test_expiry_is_system_only(self):
        acceptance = make_acceptance(S.APPROVED)
        assert self.policy.can_transition(SYSTEM_ROLE, None, acceptance, S.APPROVED, S.EXPIRED)
        assert not self.policy.can_transition("CCRO_TEAM", "C1", acceptance, S.APPROVED, S.EXPIRED)
        assert not self.policy.can_transition("CEO", "U9", acceptance, S.APPROVED, S.EXPIRED)

    def test_illegal_edge_never_allowed(self):
        acceptance = make_acceptance(S.PROPOSED)
        assert not self.policy.can_transition("CCRO_TEAM", "C1", acceptance, S.PROPOSED, S.APPROVED)

    def test_allowed_targets(self):
        acceptance = make_acceptance(S.CCRO_REVIEW)
        assert self.policy.allowed_targets("CCRO_TEAM", "C1", acceptance) == [
            "AWAITING_APPROVAL",
            "RETURNED",
            "REJECTED",
        ]
        assert self.policy.allowed_targets("OWNER", "P1", acceptance) == []


class TestVisibility:
    """View, comment and edit rights."""

    def setup_method(self):
        self.policy = AccessPolicy(DefaultPermissionResolver())

    @pytest.mark.parametrize("role", ["CCRO_TEAM", "CEO", "OWNER", "VIEWER"])
    def test_all_roles_view(self, role):
        assert self.policy.can_view(role, "anyone", make_acceptance())

    def test_unknown_role_cannot_view(self):
        assert not self.policy.can_view("CONTRACTOR", "K1", make_acceptance())

    def test_comment_rights(self):
        acceptance = make_acceptance()
        assert self.policy.can_comment("OWNER", "P1", acceptance)
        assert self.policy.can_comment("CEO", "U9", acceptance)
        assert self.policy.can_comment("CCRO_TEAM", "C1", acceptance)
        assert not self.policy.can_comment("CEO", "U8", acceptance)
        assert not self.policy.can_comment("VIEWER", "V1", acceptance)

    @pytest.mark.parametrize(
        "status,allowed",
        [(S.PROPOSED, True), (S.RETURNED, True), (S.CCRO_REVIEW, False), (S.APPROVED, False)],
    )
    def test_edit_only_while_editable(self, status, allowed):
        acceptance = make_acceptance(status)
        assert self.policy.can_edit("OWNER", "P1", acceptance) is allowed
        assert not self.policy.can_edit("CCRO_TEAM", "C1", acceptance)


class TestPermissionResolution:
    """User override > role setting > built-in default."""

    def test_defaults(self):
        resolver = DefaultPermissionResolver()
        assert resolver.has_permission("CCRO_TEAM", "C1", REVIEW_ACCEPTANCE)
        assert resolver.has_permission("OWNER", "P1", CREATE_ACCEPTANCE)
        assert not resolver.has_permission("VIEWER", "V1", CREATE_ACCEPTANCE)
        assert not resolver.has_permission(None, "V1", VIEW_ACCEPTANCES)

    def test_role_row_overrides_default(self, db):
        db.add(RolePermission(role="VIEWER", permission=CREATE_ACCEPTANCE, granted=True))
        db.commit()
        assert DatabasePermissionResolver(db).has_permission("VIEWER", "V1", CREATE_ACCEPTANCE)

    def test_user_row_overrides_role(self, db):
        db.add(RolePermission(role="CCRO_TEAM", permission=REVIEW_ACCEPTANCE, granted=True))
        db.add(UserPermission(user_id="C2", permission=REVIEW_ACCEPTANCE, granted=False))
        db.commit()
        resolver = DatabasePermissionResolver(db)
        assert resolver.has_permission("CCRO_TEAM", "C1", REVIEW_ACCEPTANCE)
        assert not resolver.has_permission("CCRO_TEAM", "C2", REVIEW_ACCEPTANCE)

    def test_policy_only_asks_resolver(self):
        resolver = Mock()
        resolver.has_permission.return_value = True
        policy = AccessPolicy(resolver)

        assert policy.is_reviewer("ANY_ROLE", "Z1")
        resolver.has_permission.assert_called_once_with("ANY_ROLE", "Z1", REVIEW_ACCEPTANCE)

    def test_system_role_is_never_a_reviewer(self):
        resolver = Mock()
        resolver.has_permission.return_value = True
        assert not AccessPolicy(resolver).is_reviewer(SYSTEM_ROLE, None)
        resolver.has_permission.assert_not_called()

    def test_revoked_reviewer_cannot_claim(self, db, workflow, create):
        from riskaccept_api.workflow.errors import Forbidden

        db.add(UserPermission(user_id="C2", permission=REVIEW_ACCEPTANCE, granted=False))
        db.commit()
        acceptance = create()
        with pytest.raises(Forbidden):
            workflow.transition(acceptance.id, "C2", "CCRO_TEAM", S.CCRO_REVIEW)
