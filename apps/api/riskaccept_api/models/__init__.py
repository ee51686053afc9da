"""Database models - import all models here for Alembic discovery."""

from riskaccept_api.models.acceptance import (
    AcceptanceSource,
    AcceptanceStatus,
    AppendOnlyViolation,
    HistoryAction,
    RiskAcceptance,
    RiskAcceptanceComment,
    RiskAcceptanceHistory,
)
from riskaccept_api.models.directory import (
    ConsumerDutyOutcome,
    Control,
    Risk,
    RiskMitigation,
    RolePermission,
    User,
    UserPermission,
)
from riskaccept_api.models.sequence import ReferenceSequence

__all__ = [
    "AcceptanceSource",
    "AcceptanceStatus",
    "AppendOnlyViolation",
    "HistoryAction",
    "RiskAcceptance",
    "RiskAcceptanceComment",
    "RiskAcceptanceHistory",
    "ReferenceSequence",
    "User",
    "Risk",
    "Control",
    "RiskMitigation",
    "ConsumerDutyOutcome",
    "RolePermission",
    "UserPermission",
]
