"""Seed data for development and testing."""

import logging

from sqlalchemy.orm import Session

from riskaccept_api.access.permissions import CCRO_TEAM, CEO, OWNER, VIEWER
from riskaccept_api.models import ConsumerDutyOutcome, Control, Risk, RiskMitigation, User

logger = logging.getLogger(__name__)

DEMO_USERS = [
    ("C1", "ccro.lead@example.com", "Casey Reviewer", CCRO_TEAM),
    ("C2", "ccro.analyst@example.com", "Morgan Analyst", CCRO_TEAM),
    ("U9", "ceo@example.com", "Jordan Chief", CEO),
    ("O1", "fraud.owner@example.com", "Riley Owner", OWNER),
    ("V1", "auditor@example.com", "Sam Auditor", VIEWER),
]

DEMO_OUTCOMES = [
    ("CDO-1", "Products and services"),
    ("CDO-2", "Price and value"),
    ("CDO-3", "Consumer understanding"),
    ("CDO-4", "Consumer support"),
]


def seed_users(db: Session):
    """Seed directory users."""
    for user_id, email, name, role in DEMO_USERS:
        if db.get(User, user_id) is None:
            db.add(User(id=user_id, email=email, name=name, role=role, is_active=True))
    db.flush()


def seed_risks(db: Session):
    """Seed a risk with controls and mitigations."""
    if db.get(Risk, "R-FRAUD-01") is not None:
        return

    risk = Risk(
        id="R-FRAUD-01",
        reference="R001",
        name="Payment fraud on legacy telephone channel",
        owner_id="O1",
        residual_likelihood=3,
        residual_impact=4,
        risk_appetite="LOW",
    )
    db.add(risk)
    db.flush()

    db.add_all(
        [
            Control(id="CTL-101", risk_id=risk.id, reference="CTL-101", name="Call-back verification", sort_order=1),
            Control(id="CTL-102", risk_id=risk.id, reference="CTL-102", name="Velocity limits", sort_order=2),
            RiskMitigation(risk_id=risk.id, action="Migrate customers to authenticated app channel", status="IN_PROGRESS"),
        ]
    )
    db.flush()


def seed_outcomes(db: Session):
    """Seed consumer-duty outcomes."""
    for outcome_id, name in DEMO_OUTCOMES:
        if db.get(ConsumerDutyOutcome, outcome_id) is None:
            db.add(ConsumerDutyOutcome(id=outcome_id, name=name))
    db.flush()


def seed_all(db: Session):
    """Seed all demo data."""
    seed_users(db)
    seed_risks(db)
    seed_outcomes(db)
    db.commit()
    logger.info("Seed data created")
