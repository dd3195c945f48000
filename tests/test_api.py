import pytest
from fastapi.testclient import TestClient

from face_attendance.errors import InfrastructureError
from face_attendance.main import app, get_service


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, name="User One", email="u1@example.com", descriptor=(1, 0, 0), **extra):
    return client.post(
        "/api/users/register",
        json={"name": name, "email": email, "descriptor": list(descriptor), **extra},
    )


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["strategy"] == "reject-on-tie"
    assert response.json()["descriptor_length"] == 3


def test_register_and_list(client):
    response = register(client)

    assert response.status_code == 201
    user = response.json()["user"]
    assert user["name"] == "User One"
    assert user["descriptor_count"] == 1

    users = client.get("/api/users").json()["users"]
    assert users == [{"id": user["id"], "name": "User One", "descriptor_count": 1}]


def test_register_duplicate_email(client):
    register(client)

    response = register(client, name="Other")

    assert response.status_code == 409


def test_register_wrong_dimension(client):
    response = register(client, descriptor=(1, 0))

    assert response.status_code == 400


def test_mark_attendance_outcomes(client):
    user_id = register(client).json()["user"]["id"]
    body = {"descriptor": [1, 0, 0.01], "day": "2024-01-01"}

    first = client.post("/api/attendance/mark", json=body)
    second = client.post("/api/attendance/mark", json=body)
    miss = client.post("/api/attendance/mark", json={"descriptor": [0, 0, 1], "day": "2024-01-01"})

    assert first.status_code == 200
    assert first.json()["outcome"] == "recorded"
    assert first.json()["user"]["id"] == user_id
    assert first.json()["date"] == "2024-01-01"
    assert second.json()["outcome"] == "already_recorded"
    assert miss.status_code == 200
    assert miss.json()["outcome"] == "no_match"
    assert "user" not in miss.json()

    history = client.get(f"/api/attendance/{user_id}").json()["attendance"]
    assert [(r["date"], r["status"]) for r in history] == [("2024-01-01", "present")]


def test_mark_attendance_with_empty_registry(client):
    response = client.post("/api/attendance/mark", json={"descriptor": [1, 0, 0]})

    assert response.status_code == 200
    assert response.json()["outcome"] == "no_match"
    assert response.json()["distance"] is None


def test_mark_attendance_invalid_probe(client):
    response = client.post("/api/attendance/mark", json={"descriptor": [1, 0, 0, 0]})

    assert response.status_code == 400


def test_update_and_remove_user(client):
    user_id = register(client).json()["user"]["id"]

    updated = client.put(f"/api/users/{user_id}/descriptor", json={"descriptor": [0, 1, 0]})
    assert updated.status_code == 200
    assert updated.json()["user"]["descriptor_count"] == 1

    moved = client.post("/api/attendance/mark", json={"descriptor": [0, 1, 0], "day": "2024-01-01"})
    assert moved.json()["outcome"] == "recorded"

    assert client.delete(f"/api/users/{user_id}").status_code == 200
    assert client.get("/api/users").json()["users"] == []
    assert client.delete(f"/api/users/{user_id}").status_code == 404


def test_history_unknown_user(client):
    assert client.get("/api/attendance/999").status_code == 404


def test_recording_failure_is_service_unavailable(client, service, monkeypatch):
    register(client)

    def unavailable(identity_id, today):
        raise InfrastructureError("record_presence", "database is locked", f"{identity_id}:{today.isoformat()}")

    monkeypatch.setattr(service.ledger, "record_presence", unavailable)

    response = client.post("/api/attendance/mark", json={"descriptor": [1, 0, 0], "day": "2024-01-01"})

    assert response.status_code == 503
    body = response.json()
    assert body["match_succeeded"] is True
    assert body["operation"] == "record_presence"
    assert body["idempotency_key"].endswith(":2024-01-01")
    assert response.headers["Retry-After"] == "1"
