"""Tests for reference allocation."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.orm import sessionmaker

from riskaccept_api.access.policy import AccessPolicy
from riskaccept_api.db.base import Base
from riskaccept_api.models import AcceptanceSource, ReferenceSequence, RiskAcceptance
from riskaccept_api.notifications.service import NotificationService
from riskaccept_api.workflow.engine import AcceptanceWorkflow
from riskaccept_api.workflow.errors import ValidationFailed
from riskaccept_api.workflow.references import ReferenceAllocator

from conftest import RecordingNotifier, make_sqlite_engine, seed_directory


class TestReferenceAllocator:
    """Counter-per-prefix allocation."""

    def test_first_allocation_creates_counter(self, db):
        allocator = ReferenceAllocator(db, min_digits=3)
        assert allocator.allocate("RA-") == "RA-001"
        db.commit()

        counter = db.get(ReferenceSequence, "RA-")
        assert counter.last_value == 1

    def test_allocations_increase(self, db):
        allocator = ReferenceAllocator(db, min_digits=3)
        references = [allocator.allocate("RA-") for _ in range(3)]
        db.commit()
        assert references == ["RA-001", "RA-002", "RA-003"]

    def test_prefixes_are_independent(self, db):
        allocator = ReferenceAllocator(db, min_digits=3)
        assert allocator.allocate("RA-") == "RA-001"
        assert allocator.allocate("CR-") == "CR-001"
        assert allocator.allocate("RA-") == "RA-002"

    def test_numbers_grow_past_min_digits(self, db):
        db.add(ReferenceSequence(prefix="RA-", last_value=999))
        db.commit()
        assert ReferenceAllocator(db, min_digits=3).allocate("RA-") == "RA-1000"

    def test_rolled_back_creation_does_not_burn_number(self, db, create):
        first = create()
        with pytest.raises(ValidationFailed):
            create(approver_id="X1")
        second = create()
        assert (first.reference, second.reference) == ("RA-001", "RA-002")

    def test_references_follow_creation_order(self, create):
        references = [create(title=f"Acceptance {i}").reference for i in range(5)]
        assert references == ["RA-001", "RA-002", "RA-003", "RA-004", "RA-005"]


def test_concurrent_creates_get_distinct_references(tmp_path):
    """1,000 concurrent creations yield 1,000 distinct references."""
    engine = make_sqlite_engine(f"sqlite:///{tmp_path / 'refs.db'}")
    Base.metadata.create_all(engine)
    SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = SessionFactory()
    seed_directory(setup)
    setup.close()

    def create_one(index: int) -> str:
        session = SessionFactory()
        try:
            workflow = AcceptanceWorkflow(
                session,
                policy=AccessPolicy(),
                notifications=NotificationService(session, notifier=RecordingNotifier()),
            )
            acceptance = workflow.create_acceptance(
                proposer_id="P1",
                proposer_role="OWNER",
                title=f"Concurrent acceptance {index}",
                description="Load test",
                source=AcceptanceSource.AD_HOC,
                proposed_rationale="Uniqueness under load",
            )
            return acceptance.reference
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        references = list(pool.map(create_one, range(1000)))

    assert len(references) == 1000
    assert len(set(references)) == 1000

    check = SessionFactory()
    try:
        assert check.query(RiskAcceptance).count() == 1000
        assert check.get(ReferenceSequence, "RA-").last_value == 1000
        stored = {row.reference for row in check.query(RiskAcceptance.reference).all()}
        assert stored == {f"RA-{n:03d}" for n in range(1, 1001)}
    finally:
        check.close()
        engine.dispose()
