"""
Tests for the HTTP surface: status codes, error bodies and response shapes.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from retake_engine.database import get_db, init_db
from retake_engine.main import app
from retake_engine.models.directory import Course, Exam, Student
from retake_engine.services.catalog import seed_default_management_statuses


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = TestingSessionLocal()
    course = Course(name="Biology")
    db.add(course)
    db.flush()
    db.add(Exam(course_id=course.id, name="Cells quiz", exam_number=2))
    db.add_all([Student(name="Gina Han"), Student(name="Hugo Yoon")])
    db.commit()
    seed_default_management_statuses(db)
    db.close()

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def retake(client):
    response = client.post(
        "/api/retakes",
        json={"exam_id": 1, "student_ids": [1], "scheduled_date": "2025-03-01", "performed_by": "admin_1"},
    )
    assert response.status_code == 201
    return response.json()[0]


class TestAssignEndpoint:
    def test_assign_batch(self, client):
        response = client.post(
            "/api/retakes",
            json={"exam_id": 1, "student_ids": [1, 2], "scheduled_date": "2025-03-01"},
        )

        assert response.status_code == 201
        body = response.json()
        assert [r["student"]["name"] for r in body] == ["Gina Han", "Hugo Yoon"]
        assert all(r["status"] == "Pending" for r in body)
        assert body[0]["exam"]["course"]["name"] == "Biology"

    def test_duplicate_assignment_conflicts(self, client, retake):
        response = client.post(
            "/api/retakes",
            json={"exam_id": 1, "student_ids": [1], "scheduled_date": "2025-03-05"},
        )

        assert response.status_code == 409

    def test_unknown_student_is_404(self, client):
        response = client.post(
            "/api/retakes",
            json={"exam_id": 1, "student_ids": [42], "scheduled_date": "2025-03-01"},
        )

        assert response.status_code == 404
        assert "42" in response.json()["detail"]["message"]

    def test_empty_student_list_is_422(self, client):
        response = client.post(
            "/api/retakes",
            json={"exam_id": 1, "student_ids": [], "scheduled_date": "2025-03-01"},
        )

        assert response.status_code == 422


class TestLifecycleEndpoints:
    def test_postpone_then_edit_date(self, client, retake):
        rid = retake["id"]

        postponed = client.patch(f"/api/retakes/{rid}/postpone", json={"new_date": "2025-03-08", "note": "Sick"})
        edited = client.patch(f"/api/retakes/{rid}/edit-date", json={"new_date": "2025-03-09"})

        assert postponed.status_code == 200
        assert postponed.json()["postpone_count"] == 1
        assert edited.status_code == 200
        assert edited.json()["postpone_count"] == 1
        assert edited.json()["scheduled_date"] == "2025-03-09"

    def test_absent_without_body(self, client, retake):
        response = client.patch(f"/api/retakes/{retake['id']}/absent")

        assert response.status_code == 200
        assert response.json()["status"] == "Absent"
        assert response.json()["absent_count"] == 1

    def test_refused_transition_is_409_with_details(self, client, retake):
        rid = retake["id"]
        client.patch(f"/api/retakes/{rid}/complete", json={"note": "Passed"})

        response = client.patch(f"/api/retakes/{rid}/postpone", json={"new_date": "2025-03-08"})

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["current_status"] == "Completed"
        assert detail["action"] == "Postpone"
        assert "REFUSAL" in detail["message"]

    def test_same_date_edit_is_422(self, client, retake):
        response = client.patch(f"/api/retakes/{retake['id']}/edit-date", json={"new_date": "2025-03-01"})

        assert response.status_code == 422

    def test_management_status(self, client, retake):
        ok = client.patch(
            f"/api/retakes/{retake['id']}/management-status",
            json={"management_status": "Retake notice sent"},
        )
        unknown = client.patch(
            f"/api/retakes/{retake['id']}/management-status",
            json={"management_status": "Nope"},
        )

        assert ok.status_code == 200
        assert ok.json()["management_status"] == "Retake notice sent"
        assert unknown.status_code == 422

    def test_note_edit_on_completed_retake(self, client, retake):
        rid = retake["id"]
        assert retake["note"] is None
        client.patch(f"/api/retakes/{rid}/complete")

        edited = client.patch(f"/api/retakes/{rid}/note", json={"note": "Scored 92"})
        unchanged = client.patch(f"/api/retakes/{rid}/note", json={"note": "Scored 92"})

        assert edited.status_code == 200
        assert edited.json()["note"] == "Scored 92"
        assert edited.json()["status"] == "Completed"
        assert unchanged.status_code == 422
        assert client.get(f"/api/retakes/{rid}/history/verify").json()["consistent"] is True

    def test_same_management_status_is_422(self, client, retake):
        url = f"/api/retakes/{retake['id']}/management-status"

        assert client.patch(url, json={"management_status": "Retake notice sent"}).status_code == 200
        assert client.patch(url, json={"management_status": "Retake notice sent"}).status_code == 422

    def test_unknown_retake_is_404(self, client):
        response = client.patch("/api/retakes/999/complete")

        assert response.status_code == 404

    def test_delete_requires_confirm(self, client, retake):
        rid = retake["id"]

        refused = client.delete(f"/api/retakes/{rid}")
        deleted = client.delete(f"/api/retakes/{rid}", params={"confirm": "true"})

        assert refused.status_code == 422
        assert deleted.status_code == 204
        assert client.get(f"/api/retakes/{rid}").status_code == 404


class TestReadEndpoints:
    def test_history_and_verify(self, client, retake):
        rid = retake["id"]
        client.patch(f"/api/retakes/{rid}/postpone", json={"new_date": "2025-03-08"})

        history = client.get(f"/api/retakes/{rid}/history").json()
        verification = client.get(f"/api/retakes/{rid}/history/verify").json()

        assert [h["action_type"] for h in history] == ["Assign", "Postpone"]
        assert verification["consistent"] is True
        assert verification["expected"]["postpone_count"] == 1

    def test_recent_history_feed(self, client, retake):
        response = client.get("/api/retakes/history", params={"limit": 10})

        assert response.status_code == 200
        [item] = response.json()
        assert item["student_name"] == "Gina Han"
        assert item["course_name"] == "Biology"
        assert item["action_type"] == "Assign"

    def test_recent_history_limit_bounds(self, client):
        assert client.get("/api/retakes/history", params={"limit": 0}).status_code == 422
        assert client.get("/api/retakes/history", params={"limit": 201}).status_code == 422

    def test_list_with_threshold(self, client, retake):
        client.post("/api/retakes", json={"exam_id": 1, "student_ids": [2], "scheduled_date": "2025-03-02"})
        client.patch(f"/api/retakes/{retake['id']}/postpone", json={"new_date": "2025-03-08"})

        everything = client.get("/api/retakes").json()
        flagged = client.get("/api/retakes", params={"min_postpone_count": 1}).json()

        assert len(everything) == 2
        assert [r["student"]["name"] for r in flagged] == ["Gina Han"]

    def test_list_by_status(self, client, retake):
        client.patch(f"/api/retakes/{retake['id']}/absent")

        assert len(client.get("/api/retakes", params={"status": "Absent"}).json()) == 1
        assert client.get("/api/retakes", params={"status": "Pending"}).json() == []

    def test_at_risk(self, client, retake):
        client.patch(f"/api/retakes/{retake['id']}/absent")

        body = client.get("/api/retakes/at-risk", params={"min_absent_count": 1}).json()

        assert [r["student_name"] for r in body] == ["Gina Han"]
        assert body[0]["postpone_absent_count"] == 1

    def test_management_status_catalog(self, client):
        body = client.get("/api/management-statuses").json()

        assert len(body) == 9
        assert body[0]["name"] == "Retake notice pending"
        assert body[0]["color"] == "warning"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"
