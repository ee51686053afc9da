"""Mirror tables for collaborators owned by other registers.

Users, risks, controls and consumer-duty outcomes are maintained elsewhere;
the workflow only reads them. Permission override tables back the
role/permission lookup used by the access policy.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from riskaccept_api.db.base import Base
from riskaccept_api.utils.clock import utcnow


class User(Base):
    """Directory user."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, index=True)  # CCRO_TEAM, CEO, OWNER, VIEWER
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Risk(Base):
    """Risk register entry."""

    __tablename__ = "risks"

    id = Column(String(64), primary_key=True)
    reference = Column(String(32), nullable=False, unique=True, index=True)
    name = Column(String(500), nullable=False)
    owner_id = Column(String(64), nullable=True, index=True)
    residual_likelihood = Column(Integer, nullable=True)
    residual_impact = Column(Integer, nullable=True)
    risk_appetite = Column(String(32), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    controls = relationship("Control", back_populates="risk", order_by="Control.sort_order")
    mitigations = relationship("RiskMitigation", back_populates="risk", order_by="RiskMitigation.created_at")
    owner = relationship(
        "User",
        primaryjoin="foreign(Risk.owner_id) == User.id",
        viewonly=True,
    )


class Control(Base):
    """Control library entry, optionally attached to a risk."""

    __tablename__ = "controls"

    id = Column(String(64), primary_key=True)
    risk_id = Column(String(64), ForeignKey("risks.id"), nullable=True, index=True)
    reference = Column(String(32), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    # Relationships
    risk = relationship("Risk", back_populates="controls")


class RiskMitigation(Base):
    """Mitigating action recorded against a risk."""

    __tablename__ = "risk_mitigations"

    id = Column(Integer, primary_key=True, index=True)
    risk_id = Column(String(64), ForeignKey("risks.id"), nullable=False, index=True)
    action = Column(Text, nullable=False)
    status = Column(String(32), default="OPEN", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    risk = relationship("Risk", back_populates="mitigations")


class ConsumerDutyOutcome(Base):
    """Consumer-duty outcome an acceptance may affect."""

    __tablename__ = "consumer_duty_outcomes"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)


class RolePermission(Base):
    """Per-role permission override."""

    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role", "permission", name="uq_role_permission"),)

    id = Column(Integer, primary_key=True, index=True)
    role = Column(String(32), nullable=False, index=True)
    permission = Column(String(64), nullable=False)
    granted = Column(Boolean, nullable=False)


class UserPermission(Base):
    """Per-user permission override. Takes priority over role settings."""

    __tablename__ = "user_permissions"
    __table_args__ = (UniqueConstraint("user_id", "permission", name="uq_user_permission"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    permission = Column(String(64), nullable=False)
    granted = Column(Boolean, nullable=False)
