import pytest
from fastapi.testclient import TestClient

from stepflow.api.deps import get_instance_service
from stepflow.main import app
from stepflow.services.instance_service import InstanceService
from stepflow.utils.jwt import create_access_token


@pytest.fixture
def client(engine):
    service = InstanceService(engine)
    app.dependency_overrides[get_instance_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth(username):
    return {"Authorization": f"Bearer {create_access_token(username)}"}


def error_code(response):
    return response.json()["detail"]["error"]["code"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Correlation-Id"].startswith("COR-")


def test_correlation_id_is_echoed(client):
    response = client.get("/health", headers={"X-Correlation-Id": "COR-from-client"})

    assert response.headers["X-Correlation-Id"] == "COR-from-client"


def test_requires_bearer_token(client):
    assert client.get("/api/v1/tasks/").status_code == 401

    response = client.get("/api/v1/tasks/", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert error_code(response) == "AUTHENTICATION_ERROR"


def test_start_submit_and_complete(client, approval_template):
    started = client.post(f"/api/v1/tasks/start/{approval_template.workflow_id}", headers=auth("alice"))
    assert started.status_code == 201
    body = started.json()
    assert body["status"] == "IN_PROGRESS"
    assert body["current_step_id"] == "STEP-submit"
    assert body["assignee"] == "alice"
    assert body["initiated_by"] == "alice"
    assert body["completed_at"] is None
    instance_id = body["id"]

    blocked = client.post(f"/api/v1/tasks/{instance_id}/submit", json={"amount": 1500}, headers=auth("alice"))
    assert blocked.status_code == 400
    assert error_code(blocked) == "RULE_BLOCKED"
    assert "requires approval" in blocked.json()["detail"]["error"]["message"]

    done = client.post(f"/api/v1/tasks/{instance_id}/submit", json={"amount": 500}, headers=auth("alice"))
    assert done.status_code == 200
    assert done.json()["status"] == "COMPLETED"
    assert done.json()["completed_at"].endswith("Z")
    assert done.json()["form_data"][0]["payload"] == '{"amount":500}'

    fetched = client.get(f"/api/v1/tasks/{instance_id}", headers=auth("alice"))
    assert fetched.status_code == 200
    assert fetched.json()["current_step_name"] == "Done"


def test_start_unknown_workflow(client):
    response = client.post("/api/v1/tasks/start/WF-missing", headers=auth("alice"))

    assert response.status_code == 404
    assert error_code(response) == "WORKFLOW_NOT_FOUND"


def test_other_users_are_forbidden(client, approval_template):
    instance_id = client.post(
        f"/api/v1/tasks/start/{approval_template.workflow_id}", headers=auth("alice")
    ).json()["id"]

    response = client.get(f"/api/v1/tasks/{instance_id}", headers=auth("bob"))
    assert response.status_code == 403
    assert error_code(response) == "PERMISSION_DENIED"

    assert client.get(f"/api/v1/tasks/{instance_id}", headers=auth("root")).status_code == 200


def test_cancel_then_submit(client, approval_template):
    instance_id = client.post(
        f"/api/v1/tasks/start/{approval_template.workflow_id}", headers=auth("alice")
    ).json()["id"]

    cancelled = client.post(f"/api/v1/tasks/{instance_id}/cancel", headers=auth("alice"))
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "CANCELLED"

    response = client.post(f"/api/v1/tasks/{instance_id}/submit", json={"amount": 5}, headers=auth("alice"))
    assert response.status_code == 400
    assert error_code(response) == "INVALID_STATE"


def test_submit_requires_json_object(client, approval_template):
    instance_id = client.post(
        f"/api/v1/tasks/start/{approval_template.workflow_id}", headers=auth("alice")
    ).json()["id"]

    response = client.post(f"/api/v1/tasks/{instance_id}/submit", json=[1, 2], headers=auth("alice"))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_list_my_tasks(client, approval_template):
    for _ in range(3):
        client.post(f"/api/v1/tasks/start/{approval_template.workflow_id}", headers=auth("alice"))
    client.post(f"/api/v1/tasks/start/{approval_template.workflow_id}", headers=auth("bob"))

    response = client.get("/api/v1/tasks/", params={"page": 1, "page_size": 2}, headers=auth("alice"))

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["page_size"] == 2
    assert body["has_next"] is True
    assert len(body["items"]) == 2
    assert all(item["assignee"] == "alice" for item in body["items"])


def test_list_for_unknown_user(client):
    response = client.get("/api/v1/tasks/", headers=auth("ghost"))

    assert response.status_code == 404
    assert error_code(response) == "IDENTITY_NOT_FOUND"
