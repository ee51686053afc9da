"""Role/permission lookup for risk acceptance access checks.

Resolution priority: per-user override > per-role setting > built-in default.
The built-in table always works, even with empty override tables.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.orm import Session

from riskaccept_api.models import RolePermission, UserPermission

logger = logging.getLogger(__name__)

# Permission codes
VIEW_ACCEPTANCES = "page:risk-acceptances"
CREATE_ACCEPTANCE = "create:risk-acceptance"
REVIEW_ACCEPTANCE = "review:risk-acceptance"

ALL_PERMISSIONS = {
    VIEW_ACCEPTANCES: "View Risk Acceptances",
    CREATE_ACCEPTANCE: "Propose Risk Acceptances",
    REVIEW_ACCEPTANCE: "Review Risk Acceptances (CCRO)",
}

# Roles
CCRO_TEAM = "CCRO_TEAM"
CEO = "CEO"
OWNER = "OWNER"
VIEWER = "VIEWER"
USER_ROLES = (CCRO_TEAM, CEO, OWNER, VIEWER)

# Pseudo-role used by the expiry sweeper; never assigned to a user
SYSTEM_ROLE = "SYSTEM"

DEFAULT_ROLE_PERMISSIONS = {
    CCRO_TEAM: {code: True for code in ALL_PERMISSIONS},
    CEO: {VIEW_ACCEPTANCES: True, CREATE_ACCEPTANCE: True},
    OWNER: {VIEW_ACCEPTANCES: True, CREATE_ACCEPTANCE: True},
    VIEWER: {VIEW_ACCEPTANCES: True},
}


class PermissionResolver(ABC):
    """Answers whether an actor holds a permission."""

    @abstractmethod
    def has_permission(self, role: Optional[str], user_id: Optional[str], permission: str) -> bool:
        """Return True if the permission is granted."""


class DefaultPermissionResolver(PermissionResolver):
    """Built-in role table only."""

    def __init__(self, table: Optional[dict] = None):
        self.table = table if table is not None else DEFAULT_ROLE_PERMISSIONS

    def has_permission(self, role, user_id, permission):
        if not role:
            return False
        return self.table.get(role, {}).get(permission, False)


class DatabasePermissionResolver(PermissionResolver):
    """Override rows from the database layered over the built-in table."""

    def __init__(self, db: Session, fallback: Optional[PermissionResolver] = None):
        self.db = db
        self.fallback = fallback or DefaultPermissionResolver()

    def has_permission(self, role, user_id, permission):
        if user_id:
            user_override = (
                self.db.query(UserPermission)
                .filter(
                    UserPermission.user_id == user_id,
                    UserPermission.permission == permission,
                )
                .first()
            )
            if user_override is not None:
                return user_override.granted

        if role:
            role_setting = (
                self.db.query(RolePermission)
                .filter(
                    RolePermission.role == role,
                    RolePermission.permission == permission,
                )
                .first()
            )
            if role_setting is not None:
                return role_setting.granted

        return self.fallback.has_permission(role, user_id, permission)
