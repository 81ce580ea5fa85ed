"""
HTTP surface through FastAPI's TestClient with an in-memory database.

The client is used without a context manager so the lifespan (Gemini client,
real MongoDB indexes) never runs; dependencies are overridden instead.
"""

import asyncio
import io
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from main import app
from paperscore.database import get_db
from paperscore.deps import get_current_user, get_recognition_client
from paperscore.models.user import User
from paperscore.services.locks import ExamLease
from paperscore.services.score_store import ScoreStore

from conftest import EXAM_ID, TEACHER_ID, FakeRecognitionClient, seed_exam

TEACHER = User(user_id=TEACHER_ID, email="teacher@school.test", name="Ms. Teacher")


@pytest.fixture
def api(db):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_user] = lambda: TEACHER
    app.dependency_overrides[get_recognition_client] = lambda: FakeRecognitionClient()
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_and_version(api):
    assert api.get("/health").json()["status"] == "healthy"
    assert "git_commit" in api.get("/api/version").json()


def test_report_endpoint(api, db):
    asyncio.run(seed_exam(db, questions=((1, 5, "Algebra"), (2, 10, "Geometry"))))
    asyncio.run(ScoreStore(db).upsert_score(EXAM_ID, "st_1", "exam_1_q1", 5, TEACHER_ID))
    asyncio.run(ScoreStore(db).upsert_score(EXAM_ID, "st_1", "exam_1_q2", 9, TEACHER_ID))

    response = api.get(f"/api/exams/{EXAM_ID}/report")

    assert response.status_code == 200
    body = response.json()
    assert body["per_student"][0]["total_score"] == 14
    assert body["per_student"][0]["status"] == "pass"
    assert [o["outcome"] for o in body["per_outcome"]] == ["Algebra", "Geometry"]
    assert body["class_info"]["name"] == "9-A"
    assert body["narrative"].startswith("1 of 1 registered students took the exam.")


def test_report_for_exam_without_questions_is_rejected(api, db):
    asyncio.run(seed_exam(db, questions=()))

    response = api.get(f"/api/exams/{EXAM_ID}/report")

    assert response.status_code == 400


def test_manual_score_edit_and_removal(api, db):
    asyncio.run(seed_exam(db))
    url = f"/api/exams/{EXAM_ID}/scores"

    saved = api.put(url, json={"student_id": "st_1", "question_id": "exam_1_q1", "value": {"kind": "present", "value": 0}})
    assert saved.status_code == 200
    assert saved.json()["score"] == 0
    assert api.get(url).json()["count"] == 1

    too_high = api.put(url, json={"student_id": "st_1", "question_id": "exam_1_q1", "value": {"kind": "present", "value": 6}})
    assert too_high.status_code == 400

    removed = api.put(url, json={"student_id": "st_1", "question_id": "exam_1_q1", "value": {"kind": "absent"}})
    assert removed.json()["score"] is None
    assert api.get(url).json()["count"] == 0


def test_manual_score_unknown_question_or_student(api, db):
    asyncio.run(seed_exam(db))
    url = f"/api/exams/{EXAM_ID}/scores"

    assert api.put(url, json={"student_id": "st_1", "question_id": "nope", "value": {"kind": "absent"}}).status_code == 404
    assert api.put(url, json={"student_id": "ghost", "question_id": "exam_1_q1", "value": {"kind": "absent"}}).status_code == 404
    assert api.put(url, json={"student_id": "st_1", "question_id": "exam_1_q1", "value": {"kind": "maybe"}}).status_code == 422


def test_bulk_delete_student_scores(api, db):
    asyncio.run(seed_exam(db))
    asyncio.run(ScoreStore(db).upsert_score(EXAM_ID, "st_1", "exam_1_q1", 2, TEACHER_ID))
    asyncio.run(ScoreStore(db).upsert_score(EXAM_ID, "st_1", "exam_1_q2", 3, TEACHER_ID))

    response = api.delete(f"/api/exams/{EXAM_ID}/students/st_1/scores")

    assert response.json()["deleted_count"] == 2


def test_analyze_preconditions_are_checked_before_the_job_starts(api, db):
    asyncio.run(seed_exam(db, questions=()))

    response = api.post(f"/api/exams/{EXAM_ID}/analyze")

    assert response.status_code == 400
    assert "question" in response.json()["detail"]
    assert asyncio.run(db.analysis_jobs.count_documents({})) == 0
    assert asyncio.run(db.analysis_locks.count_documents({})) == 0


def test_analyze_refused_while_another_run_holds_the_exam(api, db):
    asyncio.run(seed_exam(db))
    asyncio.run(ExamLease(db).acquire(EXAM_ID, "job_other"))

    assert api.post(f"/api/exams/{EXAM_ID}/analyze").status_code == 409
    assert api.delete(f"/api/exams/{EXAM_ID}").status_code == 409


def test_analyze_selected_needs_students(api, db):
    asyncio.run(seed_exam(db))

    assert api.post(f"/api/exams/{EXAM_ID}/analyze-selected", json={"student_ids": []}).status_code == 422


def test_analysis_job_status(api, db):
    asyncio.run(db.analysis_jobs.insert_one({"job_id": "job_1", "exam_id": EXAM_ID, "teacher_id": TEACHER_ID, "status": "completed"}))
    asyncio.run(db.analysis_jobs.insert_one({"job_id": "job_2", "exam_id": "exam_9", "teacher_id": "teacher_other", "status": "pending"}))

    assert api.get("/api/analysis-jobs/job_1").json()["status"] == "completed"
    assert api.get("/api/analysis-jobs/job_2").status_code == 403
    assert api.get("/api/analysis-jobs/job_3").status_code == 404


def test_other_teachers_exam_is_forbidden(api, db):
    asyncio.run(seed_exam(db, teacher_id="teacher_other"))

    assert api.get(f"/api/exams/{EXAM_ID}/report").status_code == 403
    assert api.get(f"/api/exams/{EXAM_ID}/scores").status_code == 403
    assert api.post(f"/api/exams/{EXAM_ID}/analyze").status_code == 403
    assert api.get("/api/exams/exam_missing/report").status_code == 404


def test_paper_upload_and_delete(api, db):
    asyncio.run(seed_exam(db, papers_per_student=0))
    buffer = io.BytesIO()
    Image.new("RGB", (1200, 900), "white").save(buffer, format="PNG")

    uploaded = api.post(
        f"/api/exams/{EXAM_ID}/students/st_1/papers",
        files={"file": ("page1.png", buffer.getvalue(), "image/png")},
    )
    assert uploaded.status_code == 200
    paper_id = uploaded.json()["paper_id"]
    stored = asyncio.run(db.papers.find_one({"paper_id": paper_id}))
    assert stored["image_base64"].startswith("data:image/jpeg;base64,")

    not_image = api.post(
        f"/api/exams/{EXAM_ID}/students/st_1/papers",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert not_image.status_code == 400

    assert api.delete(f"/api/exams/{EXAM_ID}/papers/{paper_id}").status_code == 200
    assert api.delete(f"/api/exams/{EXAM_ID}/papers/{paper_id}").status_code == 404


def test_delete_exam_cascades(api, db):
    asyncio.run(seed_exam(db))
    asyncio.run(ScoreStore(db).upsert_score(EXAM_ID, "st_1", "exam_1_q1", 2, TEACHER_ID))

    response = api.delete(f"/api/exams/{EXAM_ID}")

    assert response.status_code == 200
    assert response.json()["deleted_scores"] == 1
    assert asyncio.run(db.exams.count_documents({})) == 0


def test_session_token_authentication(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        client = TestClient(app)
        asyncio.run(seed_exam(db, questions=()))
        asyncio.run(db.users.insert_one({"user_id": TEACHER_ID, "email": "t@school.test", "name": "T", "role": "teacher"}))
        future = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        asyncio.run(db.user_sessions.insert_one({"session_token": "good", "user_id": TEACHER_ID, "expires_at": future}))
        asyncio.run(db.user_sessions.insert_one({"session_token": "old", "user_id": TEACHER_ID, "expires_at": past}))

        url = f"/api/exams/{EXAM_ID}/scores"
        assert client.get(url).status_code == 401
        assert client.get(url, headers={"Authorization": "Bearer old"}).status_code == 401
        assert client.get(url, headers={"Authorization": "Bearer good"}).status_code == 200
    finally:
        app.dependency_overrides.clear()
