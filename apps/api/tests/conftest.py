"""Pytest configuration and fixtures."""

import os

# Settings are cached on first use; point them at test values before any app import
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ["NOTIFICATION_BACKEND"] = "log"

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from riskaccept_api.access.permissions import CCRO_TEAM, CEO, OWNER, VIEWER  # noqa: E402
from riskaccept_api.db.base import Base  # noqa: E402
from riskaccept_api.models import (  # noqa: E402
    AcceptanceSource,
    AcceptanceStatus,
    ConsumerDutyOutcome,
    Control,
    Risk,
    RiskMitigation,
    User,
)
from riskaccept_api.notifications.service import NotificationService, Notifier  # noqa: E402
from riskaccept_api.utils.clock import utcnow  # noqa: E402
from riskaccept_api.workflow.engine import AcceptanceWorkflow  # noqa: E402


class RecordingNotifier(Notifier):
    """Keeps messages in memory instead of sending them."""

    def __init__(self):
        self.sent = []

    def notify(self, user_id, subject, body, correlation_id=None):
        self.sent.append(
            {"user_id": user_id, "subject": subject, "body": body, "correlation_id": correlation_id}
        )

    def recipients(self) -> list[str]:
        return [message["user_id"] for message in self.sent]


def make_sqlite_engine(url: str):
    """Engine for tests. File-backed URLs get a busy timeout for threaded tests."""
    if url == "sqlite:///:memory:":
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)

    engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

    @event.listens_for(engine, "connect")
    def _fast_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA synchronous=OFF")
        cursor.close()

    return engine


def seed_directory(session: Session) -> None:
    """Users, a risk with controls and mitigations, and an outcome."""
    session.add_all(
        [
            User(id="P1", email="proposer@example.com", name="Pat Proposer", role=OWNER),
            User(id="C1", email="ccro1@example.com", name="Casey Reviewer", role=CCRO_TEAM),
            User(id="C2", email="ccro2@example.com", name="Morgan Analyst", role=CCRO_TEAM),
            User(id="U9", email="ceo@example.com", name="Jordan Chief", role=CEO),
            User(id="U8", email="coo@example.com", name="Alex Deputy", role=CEO),
            User(id="O1", email="owner@example.com", name="Riley Owner", role=OWNER),
            User(id="V1", email="viewer@example.com", name="Sam Auditor", role=VIEWER),
            User(id="X1", email="left@example.com", name="Former Staff", role=CEO, is_active=False),
        ]
    )
    session.flush()
    session.add(
        Risk(
            id="R1",
            reference="R001",
            name="Payment fraud on legacy telephone channel",
            owner_id="O1",
            residual_likelihood=3,
            residual_impact=4,
        )
    )
    session.flush()
    session.add_all(
        [
            Control(id="CTL-2", risk_id="R1", reference="CTL-2", name="Velocity limits", sort_order=2),
            Control(id="CTL-1", risk_id="R1", reference="CTL-1", name="Call-back verification", sort_order=1),
            RiskMitigation(risk_id="R1", action="Move customers to app channel", status="OPEN"),
            ConsumerDutyOutcome(id="CDO-4", name="Consumer support"),
        ]
    )
    session.commit()


@pytest.fixture(scope="function")
def db():
    """Create a test database session on SQLite in-memory."""
    engine = make_sqlite_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    seed_directory(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def workflow(db: Session, notifier: RecordingNotifier) -> AcceptanceWorkflow:
    """Workflow engine wired to the test session and a recording notifier."""
    return AcceptanceWorkflow(db, notifications=NotificationService(db, notifier=notifier))


@pytest.fixture
def create(workflow: AcceptanceWorkflow):
    """Factory for acceptances with sensible defaults."""

    def _create(**overrides):
        values = {
            "proposer_id": "P1",
            "title": "Accept residual fraud exposure on legacy channel",
            "description": "Legacy IVR channel lacks step-up authentication.",
            "source": AcceptanceSource.RISK_REGISTER,
            "proposed_rationale": "Channel is being decommissioned within 6 months.",
            "risk_id": "R1",
        }
        values.update(overrides)
        return workflow.create_acceptance(**values)

    return _create


@pytest.fixture
def advance(workflow: AcceptanceWorkflow):
    """Drive an acceptance to a given status along the happy path."""

    def _advance(acceptance, target: AcceptanceStatus, approver_id: str = "U9", review_date=None):
        path = [
            (AcceptanceStatus.CCRO_REVIEW, "C1", "CCRO_TEAM", {}),
            (AcceptanceStatus.AWAITING_APPROVAL, "C1", "CCRO_TEAM", {"approver_id": approver_id}),
            (
                AcceptanceStatus.APPROVED,
                approver_id,
                "CEO",
                {"review_date": review_date or utcnow() + timedelta(days=90)},
            ),
        ]
        for status, actor_id, role, kwargs in path:
            acceptance = workflow.transition(acceptance.id, actor_id, role, status, **kwargs)
            if status == target:
                return acceptance
        raise ValueError(f"{target} is not on the happy path")

    return _advance
