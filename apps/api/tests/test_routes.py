"""Tests for the risk acceptance HTTP endpoints."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from riskaccept_api.access.permissions import SYSTEM_ROLE
from riskaccept_api.db.session import get_db
from riskaccept_api.main import app
from riskaccept_api.models import User
from riskaccept_api.notifications.service import NotificationService
from riskaccept_api.settings import get_settings
from riskaccept_api.utils.clock import utcnow

PROPOSER = {"x-user-id": "P1"}
CCRO = {"x-user-id": "C1"}
APPROVER = {"x-user-id": "U9"}
VIEWER = {"x-user-id": "V1"}

NEW_ACCEPTANCE = {
    "title": "Accept residual fraud exposure on legacy channel",
    "description": "Legacy IVR channel lacks step-up authentication.",
    "source": "RISK_REGISTER",
    "proposed_rationale": "Channel is being decommissioned.",
    "risk_id": "R1",
}


@pytest.fixture
def client(db):
    """Test client bound to the test session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def create(client, **overrides):
    response = client.post("/v1/risk-acceptances", json={**NEW_ACCEPTANCE, **overrides}, headers=PROPOSER)
    assert response.status_code == 201, response.text
    return response.json()


def transition(client, acceptance_id, headers, **body):
    return client.post(f"/v1/risk-acceptances/{acceptance_id}/transitions", json=body, headers=headers)


class TestAcceptanceRoutes:
    """CRUD and workflow over HTTP."""

    def test_create(self, client):
        data = create(client)
        assert data["reference"] == "RA-001"
        assert data["status"] == "PROPOSED"
        assert data["proposer_id"] == "P1"
        assert data["risk"]["reference"] == "R001"
        assert [h["action"] for h in data["history"]] == ["CREATED"]

    def test_create_requires_identity(self, client):
        assert client.post("/v1/risk-acceptances", json=NEW_ACCEPTANCE).status_code == 401
        response = client.post("/v1/risk-acceptances", json=NEW_ACCEPTANCE, headers={"x-user-id": "X1"})
        assert response.status_code == 401

    def test_create_validation_error_shape(self, client):
        response = client.post(
            "/v1/risk-acceptances", json={**NEW_ACCEPTANCE, "title": " "}, headers=PROPOSER
        )
        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"

    def test_system_role_user_rejected(self, client, db):
        db.add(User(id="S1", email="system@example.com", name="Scheduler", role=SYSTEM_ROLE))
        db.commit()
        assert client.get("/v1/risk-acceptances", headers={"x-user-id": "S1"}).status_code == 401

    def test_viewer_cannot_create(self, client):
        response = client.post("/v1/risk-acceptances", json=NEW_ACCEPTANCE, headers=VIEWER)
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_list_and_filter(self, client):
        create(client)
        create(client, title="Incident driven", source="INCIDENT")

        response = client.get("/v1/risk-acceptances", params={"source": "INCIDENT"}, headers=VIEWER)
        assert response.status_code == 200
        assert [a["title"] for a in response.json()] == ["Incident driven"]

        response = client.get("/v1/risk-acceptances", params={"status": "NOPE"}, headers=VIEWER)
        assert response.status_code == 422

    def test_get_not_found(self, client):
        response = client.get("/v1/risk-acceptances/missing", headers=VIEWER)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_allowed_transitions_depend_on_caller(self, client):
        data = create(client)
        as_ccro = client.get(f"/v1/risk-acceptances/{data['id']}", headers=CCRO).json()
        as_proposer = client.get(f"/v1/risk-acceptances/{data['id']}", headers=PROPOSER).json()
        assert as_ccro["allowed_transitions"] == ["CCRO_REVIEW"]
        assert as_proposer["allowed_transitions"] == []

    def test_transition_flow(self, client):
        data = create(client)
        response = transition(client, data["id"], CCRO, target_status="CCRO_REVIEW")
        assert response.status_code == 200
        assert response.json()["reviewer_id"] == "C1"

        response = transition(client, data["id"], CCRO, target_status="AWAITING_APPROVAL", approver_id="U9")
        assert response.json()["status"] == "AWAITING_APPROVAL"

        response = transition(client, data["id"], {"x-user-id": "U8"}, target_status="APPROVED")
        assert response.status_code == 403

        review_date = (utcnow() + timedelta(days=90)).isoformat()
        response = transition(client, data["id"], APPROVER, target_status="APPROVED", review_date=review_date)
        assert response.status_code == 200
        assert response.json()["status"] == "APPROVED"
        assert response.json()["review_date"] is not None

    def test_transition_conflict(self, client):
        data = create(client)
        assert transition(client, data["id"], CCRO, target_status="CCRO_REVIEW").status_code == 200

        response = transition(client, data["id"], {"x-user-id": "C2"}, target_status="CCRO_REVIEW")
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

        response = transition(
            client, data["id"], CCRO, target_status="REJECTED", review_note="No", expected_status="PROPOSED"
        )
        assert response.status_code == 409

    def test_transition_survives_notification_failure(self, client):
        data = create(client)
        transition(client, data["id"], CCRO, target_status="CCRO_REVIEW")

        with patch.object(NotificationService, "approval_requested", side_effect=RuntimeError("relay down")):
            response = transition(client, data["id"], CCRO, target_status="AWAITING_APPROVAL", approver_id="U9")

        assert response.status_code == 200
        assert response.json()["status"] == "AWAITING_APPROVAL"
        assert response.json()["history"][-1]["action"] == "FORWARDED_FOR_APPROVAL"

    def test_rejection_requires_note(self, client):
        data = create(client)
        transition(client, data["id"], CCRO, target_status="CCRO_REVIEW")
        response = transition(client, data["id"], CCRO, target_status="REJECTED")
        assert response.status_code == 422

    def test_update_by_proposer(self, client):
        data = create(client)
        response = client.patch(
            f"/v1/risk-acceptances/{data['id']}",
            json={"proposed_conditions": "Monthly review", "linked_action_ids": ["ACT-2", "ACT-1"]},
            headers=PROPOSER,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["proposed_conditions"] == "Monthly review"
        assert body["linked_action_ids"] == ["ACT-1", "ACT-2"]
        assert body["history"][-1]["action"] == "UPDATED"

    def test_update_rejections(self, client):
        data = create(client)
        url = f"/v1/risk-acceptances/{data['id']}"

        assert client.patch(url, json={"title": "Mine now"}, headers=CCRO).status_code == 403
        assert client.patch(url, json={"source": "INCIDENT"}, headers=PROPOSER).status_code == 422

        transition(client, data["id"], CCRO, target_status="CCRO_REVIEW")
        assert client.patch(url, json={"title": "Too late"}, headers=PROPOSER).status_code == 409

    def test_comments_and_history(self, client):
        data = create(client)
        url = f"/v1/risk-acceptances/{data['id']}"

        response = client.post(f"{url}/comments", json={"body": "Loss data attached"}, headers=PROPOSER)
        assert response.status_code == 201
        assert response.json()["user"]["name"] == "Pat Proposer"

        assert client.post(f"{url}/comments", json={"body": "Hi"}, headers=VIEWER).status_code == 403

        history = client.get(f"{url}/history", headers=VIEWER).json()
        assert [h["action"] for h in history] == ["CREATED", "COMMENT_ADDED"]


class TestInternalRoutes:
    """Scheduler endpoint."""

    def test_sweep_requires_internal_key(self, client):
        response = client.post("/internal/risk-acceptances/expiry-sweep")
        assert response.status_code == 403
        response = client.post(
            "/internal/risk-acceptances/expiry-sweep", headers={"x-internal-key": "wrong"}
        )
        assert response.status_code == 403

    def test_sweep_expires_due_rows(self, client):
        data = create(client)
        transition(client, data["id"], CCRO, target_status="CCRO_REVIEW")
        transition(client, data["id"], CCRO, target_status="AWAITING_APPROVAL", approver_id="U9")
        review_date = utcnow() + timedelta(days=90)
        transition(client, data["id"], APPROVER, target_status="APPROVED", review_date=review_date.isoformat())

        headers = {"x-internal-key": get_settings().internal_api_key}
        now = (review_date + timedelta(days=1)).isoformat()
        response = client.post("/internal/risk-acceptances/expiry-sweep", json={"now": now}, headers=headers)
        assert response.status_code == 200
        assert response.json()["expired"] == 1

        response = client.post("/internal/risk-acceptances/expiry-sweep", json={"now": now}, headers=headers)
        assert response.json()["expired"] == 0

        detail = client.get(f"/v1/risk-acceptances/{data['id']}", headers=VIEWER).json()
        assert detail["status"] == "EXPIRED"
        assert detail["history"][-1]["user_id"] is None
